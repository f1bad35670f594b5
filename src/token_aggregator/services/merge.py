"""
Merge engine.

Reconciles AssetRecords from all sources into one AggregatedRecord per
identity. Pure: no I/O, no shared state.

Per-field policy when an identity is seen again:
- name, ticker:          replaced only by a non-empty value
- price:                 replaced only by a strictly positive value
- market cap, volume,
  liquidity, txn count:  maximum of old and new
- 1h/24h/7d change:      replaced only by a non-zero value
- protocol:              first seen wins
- sources:               ordered union
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import replace
from datetime import UTC, datetime

from token_aggregator.domain.models import AggregatedRecord, AssetRecord


def _now() -> datetime:
    return datetime.now(UTC)


def merge_record(existing: AggregatedRecord, record: AssetRecord, merged_at: datetime) -> AggregatedRecord:
    """Fold one more source record into an aggregated record."""
    sources = existing.sources
    if record.source not in sources:
        sources = (*sources, record.source)

    return replace(
        existing,
        name=record.name or existing.name,
        ticker=record.ticker or existing.ticker,
        price_native=record.price_native if record.price_native > 0 else existing.price_native,
        market_cap_native=max(existing.market_cap_native, record.market_cap_native),
        volume_native=max(existing.volume_native, record.volume_native),
        liquidity_native=max(existing.liquidity_native, record.liquidity_native),
        transaction_count=max(existing.transaction_count, record.transaction_count),
        price_1h_change=record.price_1h_change if record.price_1h_change != 0 else existing.price_1h_change,
        price_24h_change=record.price_24h_change if record.price_24h_change != 0 else existing.price_24h_change,
        price_7d_change=record.price_7d_change if record.price_7d_change else existing.price_7d_change,
        sources=sources,
        updated_at=max(existing.updated_at, record.updated_at),
        aggregated_at=merged_at,
    )


def merge(
    records: Iterable[AssetRecord],
    *,
    clock: Callable[[], datetime] = _now,
) -> dict[str, AggregatedRecord]:
    """
    Merge records keyed by identity.

    Result order is first-seen order of identities. Records without an
    identity are dropped.
    """
    merged_at = clock()
    result: dict[str, AggregatedRecord] = {}

    for record in records:
        if not record.address:
            continue
        existing = result.get(record.address)
        if existing is None:
            result[record.address] = AggregatedRecord.from_asset(record, merged_at)
        else:
            result[record.address] = merge_record(existing, record, merged_at)

    return result
