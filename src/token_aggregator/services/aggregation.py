"""
Aggregation service: the query surface handed to a router.

Every method absorbs errors; callers always get a Page, a record or None,
a count, or a health dict.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from token_aggregator.domain.models import AggregatedRecord, FilterSpec, Page
from token_aggregator.observability.logging import LOG_TAG_HEALTH, get_logger
from token_aggregator.services.broadcaster import Broadcaster
from token_aggregator.services.cache_layer import CacheLayer
from token_aggregator.services.query import query

logger = get_logger(__name__)


def _now() -> datetime:
    return datetime.now(UTC)


class AggregationService:
    def __init__(
        self,
        cache_layer: CacheLayer,
        broadcaster: Broadcaster | None = None,
        *,
        clock: Callable[[], datetime] = _now,
    ):
        self._cache_layer = cache_layer
        self._broadcaster = broadcaster
        self._clock = clock

    async def list_tokens(self, spec: FilterSpec | None = None) -> Page:
        """One page of the current aggregate, filtered and sorted."""
        aggregate = await self._cache_layer.get_aggregate()
        try:
            return query(aggregate, spec or FilterSpec())
        except Exception as e:
            logger.exception(f"Query failed for {spec}: {e}")
            return Page(items=(), next_cursor=None, total=0)

    def get_token(self, address: str) -> AggregatedRecord | None:
        """Point lookup in the in-memory index. Never fetches."""
        if not address:
            return None
        return self._cache_layer.get_by_identity(address)

    async def refresh(self) -> int:
        """Force a recompute; returns the number of tokens in the new aggregate."""
        aggregate = await self._cache_layer.refresh()
        return len(aggregate)

    def health(self) -> dict[str, Any]:
        tokens_indexed = len(self._cache_layer.index)
        cache_available = self._cache_layer.cache_available
        connected = self._broadcaster.connected_count if self._broadcaster else 0
        subscribed = self._broadcaster.subscribed_count if self._broadcaster else 0

        if tokens_indexed and cache_available:
            status = "ok"
        elif tokens_indexed:
            status = "degraded"
        else:
            status = "starting"

        report = {
            "status": status,
            "timestamp": self._clock().isoformat(),
            "cache_available": cache_available,
            "tokens_indexed": tokens_indexed,
            "connected_listeners": connected,
            "subscribed_listeners": subscribed,
        }
        logger.debug(f"{LOG_TAG_HEALTH} {report}")
        return report
