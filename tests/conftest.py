"""
Shared fixtures for offline unit tests.

No test talks to the network or to a Redis server: upstreams are faked at
the adapter or fetcher seam, the durable cache is a MemoryCache.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from token_aggregator.adapters.cache.memory import MemoryCache
from token_aggregator.domain.models import Aggregate, AggregatedRecord, AssetRecord
from token_aggregator.ports.feed import FeedListener
from token_aggregator.ports.source import FetchScope

T0 = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)


def _dec(value) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


@pytest.fixture
def t0() -> datetime:
    return T0


@pytest.fixture
def make_asset():
    """Factory for AssetRecords with sensible defaults."""

    def _make(address: str = "Tkn111", source: str = "dexscreener", **overrides) -> AssetRecord:
        values = {
            "name": "Token",
            "ticker": "TKN",
            "price_native": Decimal("1"),
            "market_cap_native": Decimal("100"),
            "volume_native": Decimal("10"),
            "liquidity_native": Decimal("20"),
            "transaction_count": 5,
            "price_1h_change": Decimal("0"),
            "price_24h_change": Decimal("0"),
            "protocol": "raydium",
            "updated_at": T0,
        }
        values.update(overrides)
        for key in ("price_native", "market_cap_native", "volume_native", "liquidity_native"):
            values[key] = _dec(values[key])
        return AssetRecord(address=address, source=source, **values)

    return _make


@pytest.fixture
def make_record():
    """Factory for AggregatedRecords."""

    def _make(address: str = "Tkn111", **overrides) -> AggregatedRecord:
        values = {
            "name": "Token",
            "ticker": "TKN",
            "price_native": Decimal("1"),
            "market_cap_native": Decimal("100"),
            "volume_native": Decimal("10"),
            "liquidity_native": Decimal("20"),
            "transaction_count": 5,
            "price_1h_change": Decimal("0"),
            "price_24h_change": Decimal("0"),
            "price_7d_change": None,
            "protocol": "raydium",
            "sources": ("dexscreener",),
            "updated_at": T0,
            "aggregated_at": T0 + timedelta(seconds=1),
        }
        values.update(overrides)
        for key in ("price_native", "market_cap_native", "volume_native", "liquidity_native"):
            values[key] = _dec(values[key])
        return AggregatedRecord(address=address, **values)

    return _make


@pytest.fixture
def make_aggregate(make_record):
    """Build an Aggregate from (address, overrides) pairs, keeping order."""

    def _make(*specs: tuple[str, dict]) -> Aggregate:
        return Aggregate({address: make_record(address, **overrides) for address, overrides in specs})

    return _make


@pytest.fixture
def memory_cache() -> MemoryCache:
    return MemoryCache(default_ttl=30)


@pytest.fixture
def scope() -> FetchScope:
    return FetchScope(chain="solana", identities=())


@pytest.fixture
def mock_fetcher():
    """RetryingFetcher stand-in; set fetch.return_value / side_effect per test."""
    fetcher = MagicMock()
    fetcher.fetch = AsyncMock(return_value={})
    fetcher.close = AsyncMock()
    return fetcher


@pytest.fixture
def fake_adapter():
    """Factory for SourceAdapterPort fakes returning fixed records."""

    def _make(tag: str, records=None, *, side_effect=None, enrichment_only: bool = False):
        adapter = MagicMock()
        adapter.source_tag = tag
        adapter.enrichment_only = enrichment_only
        adapter.fetch_assets = AsyncMock(return_value=list(records or []), side_effect=side_effect)
        adapter.close = AsyncMock()
        return adapter

    return _make


class RecordingListener(FeedListener):
    """FeedListener that keeps every message it was sent."""

    def __init__(self, listener_id: str, *, fail: bool = False):
        self._id = listener_id
        self._fail = fail
        self.messages: list[tuple[str, object]] = []

    @property
    def listener_id(self) -> str:
        return self._id

    async def send(self, message: str, payload) -> None:
        if self._fail:
            raise ConnectionResetError("client went away")
        self.messages.append((message, payload))

    def of_type(self, message: str) -> list:
        return [payload for name, payload in self.messages if name == message]


@pytest.fixture
def listener_factory():
    return RecordingListener
