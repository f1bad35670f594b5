"""
Domain Layer: Core models, events, and errors.

This layer has no external dependencies (no I/O, no SDKs).
"""

from token_aggregator.domain.errors import (
    AggregatorError,
    CacheUnavailableError,
    FetchError,
    MalformedPayloadError,
    PermanentFetchError,
    RateLimitedError,
    TransientFetchError,
)
from token_aggregator.domain.events import ChangeEvent, ChangeType
from token_aggregator.domain.models import (
    Aggregate,
    AggregatedRecord,
    AssetRecord,
    FeedState,
    FilterSpec,
    Page,
    SortKey,
    SortOrder,
)

__all__ = [
    # Models
    "AssetRecord",
    "AggregatedRecord",
    "Aggregate",
    "FilterSpec",
    "Page",
    "SortKey",
    "SortOrder",
    "FeedState",
    # Events
    "ChangeEvent",
    "ChangeType",
    # Errors
    "AggregatorError",
    "FetchError",
    "RateLimitedError",
    "TransientFetchError",
    "PermanentFetchError",
    "MalformedPayloadError",
    "CacheUnavailableError",
]
