"""
Canonical Domain Models.

All prices and metrics use Decimal and are denominated in the reference
unit (SOL). Upstream payload shapes are mapped to these by the source
adapters; nothing downstream of an adapter sees raw provider data.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any

from token_aggregator.utils.decimals import safe_decimal

UNKNOWN_PROTOCOL = "Unknown"

# =============================================================================
# ENUMS
# =============================================================================


class SortKey(str, Enum):
    """Sortable record fields exposed to the query surface."""

    VOLUME = "volume"
    PRICE_CHANGE = "price_change"
    MARKET_CAP = "market_cap"
    LIQUIDITY = "liquidity"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"

    @classmethod
    def from_string(cls, value: str | None) -> SortOrder:
        """Parse sort direction; anything but "asc" sorts descending."""
        if value and value.strip().lower() == "asc":
            return cls.ASC
        return cls.DESC


class FeedState(str, Enum):
    """Live feed cycle states."""

    IDLE = "IDLE"
    FETCHING = "FETCHING"
    COMPARING = "COMPARING"
    BROADCASTING = "BROADCASTING"


# =============================================================================
# RECORDS
# =============================================================================


def _utc_now() -> datetime:
    return datetime.now(UTC)


def _iso(ts: datetime) -> str:
    return ts.isoformat()


def _parse_ts(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, (int, float)):
        # Epoch milliseconds
        return datetime.fromtimestamp(value / 1000, tz=UTC)
    if isinstance(value, str) and value:
        return datetime.fromisoformat(value)
    return _utc_now()


def _optional_decimal(value: Any) -> Decimal | None:
    if value is None:
        return None
    return safe_decimal(value)


@dataclass(frozen=True, slots=True)
class AssetRecord:
    """
    One token as reported by a single source.

    Immutable once built by an adapter. Non-percentage numerics are
    non-negative; percentage changes may be negative.
    """

    address: str
    name: str = ""
    ticker: str = ""
    price_native: Decimal = Decimal("0")
    market_cap_native: Decimal = Decimal("0")
    volume_native: Decimal = Decimal("0")
    liquidity_native: Decimal = Decimal("0")
    transaction_count: int = 0
    price_1h_change: Decimal = Decimal("0")
    price_24h_change: Decimal = Decimal("0")
    price_7d_change: Decimal | None = None
    protocol: str = UNKNOWN_PROTOCOL
    source: str = ""
    updated_at: datetime = field(default_factory=_utc_now)


@dataclass(frozen=True, slots=True)
class AggregatedRecord:
    """
    One token after reconciliation across all sources.

    `sources` is non-empty, duplicate-free and kept in first-seen order.
    """

    address: str
    name: str
    ticker: str
    price_native: Decimal
    market_cap_native: Decimal
    volume_native: Decimal
    liquidity_native: Decimal
    transaction_count: int
    price_1h_change: Decimal
    price_24h_change: Decimal
    price_7d_change: Decimal | None
    protocol: str
    sources: tuple[str, ...]
    updated_at: datetime
    aggregated_at: datetime

    @classmethod
    def from_asset(cls, record: AssetRecord, aggregated_at: datetime) -> AggregatedRecord:
        return cls(
            address=record.address,
            name=record.name,
            ticker=record.ticker,
            price_native=record.price_native,
            market_cap_native=record.market_cap_native,
            volume_native=record.volume_native,
            liquidity_native=record.liquidity_native,
            transaction_count=record.transaction_count,
            price_1h_change=record.price_1h_change,
            price_24h_change=record.price_24h_change,
            price_7d_change=record.price_7d_change,
            protocol=record.protocol,
            sources=(record.source,),
            updated_at=record.updated_at,
            aggregated_at=aggregated_at,
        )

    def sort_value(self, key: str) -> Decimal:
        """Numeric value for a sort key; unknown keys compare equal."""
        if key == SortKey.VOLUME.value:
            return self.volume_native
        if key == SortKey.PRICE_CHANGE.value:
            return self.price_1h_change
        if key == SortKey.MARKET_CAP.value:
            return self.market_cap_native
        if key == SortKey.LIQUIDITY.value:
            return self.liquidity_native
        return Decimal("0")

    def to_dict(self) -> dict[str, Any]:
        """Wire/cache representation (decimals as strings to keep precision)."""
        return {
            "token_address": self.address,
            "token_name": self.name,
            "token_ticker": self.ticker,
            "price_sol": str(self.price_native),
            "market_cap_sol": str(self.market_cap_native),
            "volume_sol": str(self.volume_native),
            "liquidity_sol": str(self.liquidity_native),
            "transaction_count": self.transaction_count,
            "price_1hr_change": str(self.price_1h_change),
            "price_24hr_change": str(self.price_24h_change),
            "price_7d_change": None if self.price_7d_change is None else str(self.price_7d_change),
            "protocol": self.protocol,
            "sources": list(self.sources),
            "last_updated": _iso(self.updated_at),
            "aggregated_at": _iso(self.aggregated_at),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> AggregatedRecord:
        sources = tuple(dict.fromkeys(str(s) for s in data.get("sources") or ()))
        return cls(
            address=str(data["token_address"]),
            name=str(data.get("token_name") or ""),
            ticker=str(data.get("token_ticker") or ""),
            price_native=safe_decimal(data.get("price_sol")),
            market_cap_native=safe_decimal(data.get("market_cap_sol")),
            volume_native=safe_decimal(data.get("volume_sol")),
            liquidity_native=safe_decimal(data.get("liquidity_sol")),
            transaction_count=int(data.get("transaction_count") or 0),
            price_1h_change=safe_decimal(data.get("price_1hr_change")),
            price_24h_change=safe_decimal(data.get("price_24hr_change")),
            price_7d_change=_optional_decimal(data.get("price_7d_change")),
            protocol=str(data.get("protocol") or UNKNOWN_PROTOCOL),
            sources=sources or ("unknown",),
            updated_at=_parse_ts(data.get("last_updated")),
            aggregated_at=_parse_ts(data.get("aggregated_at")),
        )


# =============================================================================
# AGGREGATE
# =============================================================================


class Aggregate:
    """
    Immutable identity -> AggregatedRecord mapping at one point in time.

    Iteration follows merge insertion order.
    """

    __slots__ = ("_records", "built_at")

    def __init__(
        self,
        records: Mapping[str, AggregatedRecord] | None = None,
        built_at: datetime | None = None,
    ):
        self._records: Mapping[str, AggregatedRecord] = MappingProxyType(dict(records or {}))
        self.built_at = built_at or _utc_now()

    @classmethod
    def empty(cls) -> Aggregate:
        return cls()

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[AggregatedRecord]:
        return iter(self._records.values())

    def __contains__(self, address: object) -> bool:
        return address in self._records

    def __bool__(self) -> bool:
        return bool(self._records)

    def get(self, address: str) -> AggregatedRecord | None:
        return self._records.get(address)

    def identities(self) -> list[str]:
        return list(self._records.keys())

    def records(self) -> list[AggregatedRecord]:
        return list(self._records.values())

    def top(self, n: int) -> list[AggregatedRecord]:
        """First n records in aggregate order."""
        return self.records()[: max(0, n)]

    def to_list(self) -> list[dict[str, Any]]:
        return [r.to_dict() for r in self._records.values()]

    @classmethod
    def from_list(cls, items: list[Mapping[str, Any]]) -> Aggregate:
        records: dict[str, AggregatedRecord] = {}
        for item in items:
            record = AggregatedRecord.from_dict(item)
            records[record.address] = record
        return cls(records)


# =============================================================================
# QUERY
# =============================================================================

DEFAULT_PAGE_LIMIT = 20


def _parse_optional_decimal(value: Any) -> Decimal | None:
    if value is None or value == "":
        return None
    parsed = safe_decimal(value, default=Decimal("-1"))
    return parsed if parsed >= 0 else None


@dataclass(frozen=True, slots=True)
class FilterSpec:
    """Filter, sort and pagination options for a token listing."""

    min_volume: Decimal | None = None
    min_liquidity: Decimal | None = None
    sort_by: str = SortKey.VOLUME.value
    sort_order: SortOrder = SortOrder.DESC
    limit: int = DEFAULT_PAGE_LIMIT
    cursor: str | None = None

    @classmethod
    def from_query(cls, params: Mapping[str, Any]) -> FilterSpec:
        """
        Build a FilterSpec from raw query parameters.

        Accepts the router's camelCase names (minVolume, minLiquidity,
        sortBy, sortOrder, limit, cursor). Unparsable values fall back to
        their defaults.
        """
        try:
            limit = int(params.get("limit") or DEFAULT_PAGE_LIMIT)
        except (TypeError, ValueError):
            limit = DEFAULT_PAGE_LIMIT
        if limit < 1:
            limit = DEFAULT_PAGE_LIMIT

        cursor = params.get("cursor")
        return cls(
            min_volume=_parse_optional_decimal(params.get("minVolume")),
            min_liquidity=_parse_optional_decimal(params.get("minLiquidity")),
            sort_by=str(params.get("sortBy") or SortKey.VOLUME.value),
            sort_order=SortOrder.from_string(params.get("sortOrder")),
            limit=limit,
            cursor=str(cursor) if cursor not in (None, "") else None,
        )


@dataclass(frozen=True, slots=True)
class Page:
    """One page of a filtered and sorted listing."""

    items: tuple[AggregatedRecord, ...] = ()
    next_cursor: str | None = None
    total: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "data": [r.to_dict() for r in self.items],
            "next_cursor": self.next_cursor,
            "total": self.total,
        }
