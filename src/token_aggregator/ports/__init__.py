"""
Ports: Abstract interfaces for external dependencies.

This follows the Ports & Adapters (Hexagonal) architecture pattern.
Business logic depends only on these interfaces, not on concrete implementations.
"""

from token_aggregator.ports.cache import CachePort
from token_aggregator.ports.feed import FeedListener
from token_aggregator.ports.source import FetchScope, SourceAdapterPort

__all__ = ["CachePort", "FeedListener", "FetchScope", "SourceAdapterPort"]
