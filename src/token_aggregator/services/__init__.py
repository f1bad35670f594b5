"""Application services: merge, cache layer, query, change detection and the live feed."""

from token_aggregator.services.aggregation import AggregationService
from token_aggregator.services.broadcaster import Broadcaster
from token_aggregator.services.cache_layer import AggregateIndex, CacheLayer
from token_aggregator.services.changes import ChangeDetector
from token_aggregator.services.feed import LiveFeedService
from token_aggregator.services.query import query

__all__ = [
    "AggregateIndex",
    "AggregationService",
    "Broadcaster",
    "CacheLayer",
    "ChangeDetector",
    "LiveFeedService",
    "query",
]
