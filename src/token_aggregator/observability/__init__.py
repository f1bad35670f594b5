"""Observability: logging, metrics."""

from token_aggregator.observability.logging import (
    LOG_TAG_CACHE,
    LOG_TAG_FEED,
    LOG_TAG_FETCH,
    LOG_TAG_HEALTH,
    get_logger,
    setup_logging,
)
from token_aggregator.observability.metrics import (
    record_cache_lookup,
    record_change_events,
    record_fetch_attempt,
    record_source_result,
    track_refresh_duration,
    update_aggregate_size,
    update_feed_listeners,
)

__all__ = [
    # Logging
    "setup_logging",
    "get_logger",
    "LOG_TAG_FETCH",
    "LOG_TAG_CACHE",
    "LOG_TAG_FEED",
    "LOG_TAG_HEALTH",
    # Metrics helpers
    "record_fetch_attempt",
    "record_source_result",
    "record_cache_lookup",
    "record_change_events",
    "track_refresh_duration",
    "update_aggregate_size",
    "update_feed_listeners",
]
