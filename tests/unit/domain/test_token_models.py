"""
Unit tests for domain models: wire format, cache round trip and query
parameter parsing.
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from token_aggregator.domain.errors import (
    CacheUnavailableError,
    MalformedPayloadError,
    PermanentFetchError,
    RateLimitedError,
)
from token_aggregator.domain.models import (
    Aggregate,
    AggregatedRecord,
    FilterSpec,
    SortKey,
    SortOrder,
)


class TestAggregatedRecordWireFormat:
    def test_to_dict_keys(self, make_record):
        body = make_record("A").to_dict()

        assert set(body) == {
            "token_address",
            "token_name",
            "token_ticker",
            "price_sol",
            "market_cap_sol",
            "volume_sol",
            "liquidity_sol",
            "transaction_count",
            "price_1hr_change",
            "price_24hr_change",
            "price_7d_change",
            "protocol",
            "sources",
            "last_updated",
            "aggregated_at",
        }
        assert body["price_sol"] == "1"
        assert body["price_7d_change"] is None
        assert body["sources"] == ["dexscreener"]

    def test_cache_roundtrip_preserves_values(self, make_record):
        original = make_record(
            "A",
            price_native=Decimal("0.000012345"),
            price_7d_change=Decimal("-12.5"),
            sources=("dexscreener", "jupiter"),
        )

        restored = AggregatedRecord.from_dict(original.to_dict())

        assert restored == original

    def test_from_dict_tolerates_missing_fields(self):
        record = AggregatedRecord.from_dict({"token_address": "A", "last_updated": 1704110400000})

        assert record.price_native == Decimal("0")
        assert record.protocol == "Unknown"
        assert record.sources == ("unknown",)
        assert record.updated_at.year == 2024

    def test_sort_value(self, make_record):
        record = make_record("A", price_1h_change=Decimal("4"), price_24h_change=Decimal("9"))

        assert record.sort_value(SortKey.PRICE_CHANGE.value) == Decimal("4")
        assert record.sort_value(SortKey.VOLUME.value) == record.volume_native
        assert record.sort_value("unknown") == Decimal("0")


class TestAggregate:
    def test_preserves_insertion_order(self, make_aggregate):
        aggregate = make_aggregate(("B", {}), ("A", {}), ("C", {}))

        assert aggregate.identities() == ["B", "A", "C"]
        assert [r.address for r in aggregate.top(2)] == ["B", "A"]
        assert "A" in aggregate
        assert len(aggregate) == 3

    def test_list_roundtrip(self, make_aggregate):
        aggregate = make_aggregate(("B", {}), ("A", {}))

        restored = Aggregate.from_list(aggregate.to_list())

        assert restored.identities() == ["B", "A"]
        assert restored.get("A") == aggregate.get("A")

    def test_empty_is_falsy(self):
        assert not Aggregate.empty()


class TestFilterSpecFromQuery:
    """Router query params are parsed leniently."""

    def test_defaults(self):
        spec = FilterSpec.from_query({})

        assert spec.sort_by == "volume"
        assert spec.sort_order == SortOrder.DESC
        assert spec.limit == 20
        assert spec.cursor is None
        assert spec.min_volume is None

    def test_camel_case_params(self):
        spec = FilterSpec.from_query(
            {
                "minVolume": "100",
                "minLiquidity": "5.5",
                "sortBy": "market_cap",
                "sortOrder": "ASC",
                "limit": "50",
                "cursor": "40",
            }
        )

        assert spec.min_volume == Decimal("100")
        assert spec.min_liquidity == Decimal("5.5")
        assert spec.sort_by == "market_cap"
        assert spec.sort_order == SortOrder.ASC
        assert spec.limit == 50
        assert spec.cursor == "40"

    @pytest.mark.parametrize("limit", ["0", "-5", "abc"])
    def test_invalid_limit_falls_back(self, limit):
        assert FilterSpec.from_query({"limit": limit}).limit == 20

    @pytest.mark.parametrize("value", ["-1", "lots", ""])
    def test_invalid_minimum_ignored(self, value):
        assert FilterSpec.from_query({"minVolume": value}).min_volume is None

    def test_unknown_sort_order_is_desc(self):
        assert FilterSpec.from_query({"sortOrder": "sideways"}).sort_order == SortOrder.DESC


class TestErrorTaxonomy:
    def test_to_dict(self):
        error = RateLimitedError("Rate limit exceeded", source="dexscreener", endpoint="/x", status=429)

        assert error.to_dict() == {
            "error_code": "RATE_LIMITED",
            "message": "Rate limit exceeded",
            "source": "dexscreener",
            "endpoint": "/x",
            "details": {"status": 429},
        }

    def test_hierarchy(self):
        assert issubclass(MalformedPayloadError, PermanentFetchError)
        assert CacheUnavailableError("down").error_code == "CACHE_UNAVAILABLE"
