"""
Shared source adapter behavior.

Every adapter validates its raw payload into an explicit pydantic schema
and then normalizes into AssetRecords. The public fetch_assets wrapper
absorbs every failure so one broken upstream never aborts aggregation.
"""

from __future__ import annotations

from abc import abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import ValidationError

from token_aggregator.adapters.http.fetcher import RetryingFetcher
from token_aggregator.domain.errors import AggregatorError
from token_aggregator.domain.models import UNKNOWN_PROTOCOL, AssetRecord
from token_aggregator.observability.logging import LOG_TAG_FETCH, get_logger
from token_aggregator.observability.metrics import record_source_result
from token_aggregator.ports.source import FetchScope, SourceAdapterPort
from token_aggregator.utils.decimals import ZERO, non_negative, safe_decimal, safe_divide

logger = get_logger(__name__)


class BaseSourceAdapter(SourceAdapterPort):
    """Template for adapters backed by a RetryingFetcher."""

    tag: str = "unknown"

    def __init__(self, fetcher: RetryingFetcher):
        self._fetcher = fetcher

    @property
    def source_tag(self) -> str:
        return self.tag

    async def fetch_assets(self, scope: FetchScope) -> list[AssetRecord]:
        """Fetch and normalize; never raises."""
        try:
            records = await self._fetch(scope)
        except AggregatorError as e:
            logger.warning(f"{LOG_TAG_FETCH} {self.tag} fetch failed: {e.to_dict()}")
            record_source_result(self.tag, 0, error_code=e.error_code)
            return []
        except ValidationError as e:
            logger.warning(f"{LOG_TAG_FETCH} {self.tag} payload rejected by schema: {e.error_count()} errors")
            record_source_result(self.tag, 0, error_code="MALFORMED_PAYLOAD")
            return []
        except Exception as e:
            logger.exception(f"{LOG_TAG_FETCH} {self.tag} adapter error: {e}")
            record_source_result(self.tag, 0, error_code="ADAPTER_ERROR")
            return []

        record_source_result(self.tag, len(records))
        logger.debug(f"{LOG_TAG_FETCH} {self.tag} returned {len(records)} records")
        return records

    @abstractmethod
    async def _fetch(self, scope: FetchScope) -> list[AssetRecord]:
        """Fetch, validate and normalize. May raise."""
        ...

    async def close(self) -> None:
        await self._fetcher.close()


# =============================================================================
# Normalization helpers
# =============================================================================


def reference_price(
    native_price: Decimal | None,
    price_in_quote: Decimal | None,
    reference_in_quote: Decimal | None,
) -> Decimal:
    """
    Token price in the reference unit.

    Native price wins when provided; otherwise quote price divided by the
    reference unit's quote price when both are positive; else zero.
    """
    native = safe_decimal(native_price)
    if native > 0:
        return native
    quote = safe_decimal(price_in_quote)
    ref = safe_decimal(reference_in_quote)
    if quote > 0 and ref > 0:
        return quote / ref
    return ZERO


def derive_reference_quote(price_in_quote: Decimal | None, native_price: Decimal | None) -> Decimal:
    """Reference unit priced in the quote currency, from a token's two prices."""
    quote = safe_decimal(price_in_quote)
    native = safe_decimal(native_price)
    if quote > 0 and native > 0:
        return quote / native
    return ZERO


def to_reference(amount_in_quote: Any, reference_in_quote: Decimal) -> Decimal:
    """Convert a quote-denominated metric; a zero reference price divides by 1."""
    return non_negative(safe_divide(safe_decimal(amount_in_quote), reference_in_quote))


def protocol_label(value: Any) -> str:
    label = str(value).strip() if value is not None else ""
    return label or UNKNOWN_PROTOCOL


def text(value: Any) -> str:
    return str(value).strip() if value is not None else ""


def count(*values: Any) -> int:
    """Sum of integer-like values, missing entries count as zero."""
    total = 0
    for value in values:
        try:
            total += max(0, int(value or 0))
        except (TypeError, ValueError):
            continue
    return total


def build_record(
    *,
    address: str,
    source: str,
    fetched_at: datetime,
    name: Any = None,
    ticker: Any = None,
    price: Decimal = ZERO,
    market_cap: Decimal = ZERO,
    volume: Decimal = ZERO,
    liquidity: Decimal = ZERO,
    transactions: int = 0,
    change_1h: Any = None,
    change_24h: Any = None,
    change_7d: Any = None,
    protocol: Any = None,
) -> AssetRecord:
    """Assemble an AssetRecord applying the shared defaults."""
    return AssetRecord(
        address=address,
        name=text(name),
        ticker=text(ticker),
        price_native=non_negative(price),
        market_cap_native=non_negative(market_cap),
        volume_native=non_negative(volume),
        liquidity_native=non_negative(liquidity),
        transaction_count=max(0, transactions),
        price_1h_change=safe_decimal(change_1h),
        price_24h_change=safe_decimal(change_24h),
        price_7d_change=None if change_7d is None else safe_decimal(change_7d),
        protocol=protocol_label(protocol),
        source=source,
        updated_at=fetched_at,
    )
