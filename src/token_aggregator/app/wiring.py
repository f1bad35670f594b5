"""
Component construction from Settings.

Shared by the Supervisor and the one-shot CLI commands so both wire the
same adapters, fetchers and cache layer.
"""

from __future__ import annotations

from collections.abc import Sequence

from token_aggregator.adapters.http.fetcher import RetryingFetcher
from token_aggregator.adapters.sources import DexScreenerAdapter, GeckoTerminalAdapter, JupiterAdapter
from token_aggregator.config.settings import Settings
from token_aggregator.ports.cache import CachePort
from token_aggregator.ports.source import SourceAdapterPort
from token_aggregator.services.cache_layer import CacheLayer
from token_aggregator.services.changes import ChangeDetector


def build_fetcher(settings: Settings, base_url: str, source: str) -> RetryingFetcher:
    retry = settings.retry
    return RetryingFetcher(
        base_url,
        source=source,
        max_attempts=retry.max_attempts,
        base_delay=settings.retry_base_delay_seconds,
        jitter=retry.jitter_ms / 1000,
        timeout_seconds=retry.timeout_seconds,
    )


def build_source_adapters(settings: Settings) -> list[SourceAdapterPort]:
    """Adapters in merge order: DEX listing, pool index, price oracle."""
    src = settings.sources
    return [
        DexScreenerAdapter(
            build_fetcher(settings, src.dexscreener_base_url, DexScreenerAdapter.tag),
            search_query=src.search_query,
            reference_mint=src.reference_mint,
        ),
        GeckoTerminalAdapter(
            build_fetcher(settings, src.geckoterminal_base_url, GeckoTerminalAdapter.tag),
            page=src.geckoterminal_page,
        ),
        JupiterAdapter(
            build_fetcher(settings, src.jupiter_base_url, JupiterAdapter.tag),
            reference_mint=src.reference_mint,
            batch_size=src.jupiter_batch_size,
        ),
    ]


def build_cache_layer(
    settings: Settings,
    cache: CachePort,
    adapters: Sequence[SourceAdapterPort],
) -> CacheLayer:
    return CacheLayer(
        cache,
        adapters,
        key=settings.cache.key,
        ttl_seconds=settings.cache.ttl_seconds,
        chain=settings.sources.chain,
        watchlist=settings.sources.watchlist,
    )


def build_change_detector(settings: Settings) -> ChangeDetector:
    return ChangeDetector(
        price_threshold_pct=settings.feed.price_change_threshold_pct,
        volume_threshold_pct=settings.feed.volume_spike_threshold_pct,
    )
