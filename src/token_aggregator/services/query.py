"""
Query engine: filter, sort and paginate an aggregate.

Cursors are decimal offsets into the filtered and sorted sequence.
"""

from __future__ import annotations

from collections.abc import Iterable

from token_aggregator.domain.models import (
    DEFAULT_PAGE_LIMIT,
    Aggregate,
    AggregatedRecord,
    FilterSpec,
    Page,
    SortKey,
    SortOrder,
)

_SORT_KEYS = {key.value for key in SortKey}


def parse_cursor(cursor: str | None) -> int:
    """Offset encoded in a cursor; missing, invalid or negative cursors start at 0."""
    if not cursor:
        return 0
    try:
        offset = int(cursor)
    except (TypeError, ValueError):
        return 0
    return max(0, offset)


def apply_filters(records: Iterable[AggregatedRecord], spec: FilterSpec) -> list[AggregatedRecord]:
    result = []
    for record in records:
        if spec.min_volume is not None and record.volume_native < spec.min_volume:
            continue
        if spec.min_liquidity is not None and record.liquidity_native < spec.min_liquidity:
            continue
        result.append(record)
    return result


def apply_sort(records: list[AggregatedRecord], sort_by: str, order: SortOrder) -> list[AggregatedRecord]:
    """
    Stable sort by the key's field.

    Unknown keys keep the incoming order. Descending keeps ties in their
    incoming order too (reverse=True in sorted() is stable).
    """
    if sort_by not in _SORT_KEYS:
        return list(records)
    return sorted(records, key=lambda r: r.sort_value(sort_by), reverse=order == SortOrder.DESC)


def query(aggregate: Aggregate | Iterable[AggregatedRecord], spec: FilterSpec | None = None) -> Page:
    """Filter, sort and slice one page out of an aggregate."""
    spec = spec or FilterSpec()
    filtered = apply_sort(apply_filters(aggregate, spec), spec.sort_by, spec.sort_order)

    limit = spec.limit if spec.limit > 0 else DEFAULT_PAGE_LIMIT
    offset = parse_cursor(spec.cursor)
    end = offset + limit
    items = tuple(filtered[offset:end])

    return Page(
        items=items,
        next_cursor=str(end) if end < len(filtered) else None,
        total=len(filtered),
    )
