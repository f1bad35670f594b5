"""Upstream market data sources."""

from token_aggregator.adapters.sources.dexscreener import DexScreenerAdapter
from token_aggregator.adapters.sources.geckoterminal import GeckoTerminalAdapter
from token_aggregator.adapters.sources.jupiter import JupiterAdapter

__all__ = ["DexScreenerAdapter", "GeckoTerminalAdapter", "JupiterAdapter"]
