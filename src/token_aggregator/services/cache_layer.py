"""
Read-through cache around the fan-out/merge pipeline.

The durable cache holds the serialized aggregate under one fixed key. The
in-memory AggregateIndex holds the latest computed (or loaded) aggregate
for point lookups and is only ever swapped wholesale.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from typing import Any

from token_aggregator.domain.errors import CacheUnavailableError
from token_aggregator.domain.models import Aggregate, AggregatedRecord, AssetRecord
from token_aggregator.observability.logging import LOG_TAG_CACHE, get_logger
from token_aggregator.observability.metrics import (
    record_cache_lookup,
    track_refresh_duration,
    update_aggregate_size,
)
from token_aggregator.ports.cache import CachePort
from token_aggregator.ports.source import FetchScope, SourceAdapterPort
from token_aggregator.services.merge import merge

logger = get_logger(__name__)

DEFAULT_CACHE_KEY = "tokens:aggregated"


class AggregateIndex:
    """Single-owner holder of the latest aggregate."""

    def __init__(self, aggregate: Aggregate | None = None):
        self._current = aggregate or Aggregate.empty()

    @property
    def current(self) -> Aggregate:
        return self._current

    def replace(self, aggregate: Aggregate) -> None:
        """Swap in a new aggregate. Readers see either the old or the new one."""
        self._current = aggregate

    def get(self, address: str) -> AggregatedRecord | None:
        return self._current.get(address)

    def __len__(self) -> int:
        return len(self._current)


class CacheLayer:
    """
    Owns the aggregate: reads through the durable cache, recomputes on a
    miss, writes back with a TTL and maintains the in-memory index.

    Never raises to callers. A durable cache outage degrades to
    recomputing on every call.
    """

    def __init__(
        self,
        cache: CachePort,
        adapters: Sequence[SourceAdapterPort],
        *,
        key: str = DEFAULT_CACHE_KEY,
        ttl_seconds: int = 30,
        chain: str = "solana",
        watchlist: Sequence[str] = (),
        index: AggregateIndex | None = None,
    ):
        self._cache = cache
        self._adapters = list(adapters)
        self._key = key
        self._ttl = ttl_seconds
        self._chain = chain
        self._watchlist = tuple(watchlist)
        self._index = index or AggregateIndex()

    @property
    def index(self) -> AggregateIndex:
        return self._index

    @property
    def cache_available(self) -> bool:
        return self._cache.available

    def scope(self) -> FetchScope:
        """Fetch scope for the next pass: watchlist plus currently indexed identities."""
        identities = dict.fromkeys(self._watchlist)
        identities.update(dict.fromkeys(self._index.current.identities()))
        return FetchScope(chain=self._chain, identities=tuple(identities))

    async def get_aggregate(self) -> Aggregate:
        """Current aggregate from the durable cache, or freshly computed."""
        try:
            cached = await self._read_cache()
            if cached:
                # Another instance (or a previous run) may have written it
                self._index.replace(cached)
                return cached
            return await self._recompute()
        except Exception as e:
            logger.exception(f"{LOG_TAG_CACHE} get_aggregate failed, serving last index: {e}")
            return self._index.current

    async def refresh(self) -> Aggregate:
        """Force a recompute, bypassing any cached value."""
        await self.invalidate()
        try:
            return await self._recompute()
        except Exception as e:
            logger.exception(f"{LOG_TAG_CACHE} Forced refresh failed: {e}")
            return self._index.current

    async def invalidate(self) -> None:
        try:
            await self._cache.delete(self._key)
        except CacheUnavailableError as e:
            logger.warning(f"{LOG_TAG_CACHE} Invalidate skipped, cache unavailable: {e.message}")

    def get_by_identity(self, address: str) -> AggregatedRecord | None:
        """Point lookup against the in-memory index only."""
        return self._index.get(address)

    async def _read_cache(self) -> Aggregate | None:
        try:
            payload = await self._cache.get(self._key)
        except CacheUnavailableError as e:
            record_cache_lookup("unavailable")
            logger.debug(f"{LOG_TAG_CACHE} Durable cache unavailable, recomputing: {e.message}")
            return None

        if not payload:
            record_cache_lookup("miss")
            return None

        try:
            aggregate = _decode(payload)
        except (KeyError, TypeError, ValueError) as e:
            record_cache_lookup("miss")
            logger.warning(f"{LOG_TAG_CACHE} Ignoring undecodable cached aggregate: {e}")
            return None

        record_cache_lookup("hit")
        logger.debug(f"{LOG_TAG_CACHE} Returning cached aggregate ({len(aggregate)} tokens)")
        return aggregate

    async def _recompute(self) -> Aggregate:
        with track_refresh_duration():
            fetched = await self._fetch_sources()
            records = [record for batch in fetched for record in batch]
            aggregate = Aggregate(merge(records))

        counts = {adapter.source_tag: len(batch) for adapter, batch in zip(self._adapters, fetched, strict=True)}
        logger.info(f"Fetched tokens {counts} -> {len(aggregate)} merged")

        if not aggregate:
            logger.warning(f"{LOG_TAG_CACHE} All sources empty; serving last index ({len(self._index)} tokens)")
            return self._index.current

        try:
            await self._cache.set(self._key, aggregate.to_list(), self._ttl)
        except CacheUnavailableError as e:
            logger.debug(f"{LOG_TAG_CACHE} Write-back skipped, cache unavailable: {e.message}")

        self._index.replace(aggregate)
        update_aggregate_size(len(aggregate))
        return aggregate

    async def _fetch_sources(self) -> list[list[AssetRecord]]:
        """
        Per-adapter record batches, in adapter order.

        All adapters are fetched concurrently. Enrichment sources only price
        identities, so their records are kept only for tokens a listing
        source returned in this same pass, or for the watchlist. A token no
        listing source reports any more drops out of the aggregate.
        """
        scope = self.scope()
        results = await asyncio.gather(
            *(adapter.fetch_assets(scope) for adapter in self._adapters),
            return_exceptions=True,
        )

        fetched: list[list[AssetRecord]] = []
        for adapter, result in zip(self._adapters, results, strict=True):
            if isinstance(result, BaseException):
                logger.error(f"{LOG_TAG_CACHE} Source {adapter.source_tag} raised: {result!r}")
                result = []
            fetched.append(list(result))

        listed = set(self._watchlist)
        for adapter, batch in zip(self._adapters, fetched, strict=True):
            if not adapter.enrichment_only:
                listed.update(record.address for record in batch)

        for position, adapter in enumerate(self._adapters):
            if adapter.enrichment_only:
                fetched[position] = [record for record in fetched[position] if record.address in listed]
        return fetched


def _decode(payload: Any) -> Aggregate:
    if not isinstance(payload, list):
        raise TypeError(f"expected list, got {type(payload).__name__}")
    return Aggregate.from_list(payload)
