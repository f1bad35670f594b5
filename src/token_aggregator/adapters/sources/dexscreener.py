"""
DexScreener DEX-pair source.

Uses the public search endpoint (no authentication required):
  GET https://api.dexscreener.com/latest/dex/search?q={query}

The response mixes chains; pairs on other chains are dropped before
normalization. `priceNative` is denominated in the pair's quote token, so
it is only a reference-unit price when the quote is the reference mint.
Other pairs are converted through the reference USD price observed in the
same payload.
"""

from __future__ import annotations

import statistics
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from token_aggregator.adapters.http.fetcher import RetryingFetcher
from token_aggregator.adapters.sources.base import (
    BaseSourceAdapter,
    build_record,
    count,
    derive_reference_quote,
    reference_price,
    to_reference,
)
from token_aggregator.domain.models import AssetRecord
from token_aggregator.observability.logging import get_logger
from token_aggregator.ports.source import FetchScope
from token_aggregator.utils.decimals import ZERO

logger = get_logger(__name__)

REFERENCE_SYMBOLS = ("SOL", "WSOL")

# =============================================================================
# Raw payload schema
# =============================================================================


class DexToken(BaseModel):
    model_config = ConfigDict(extra="ignore")

    address: str = ""
    name: str | None = None
    symbol: str | None = None


class DexLiquidity(BaseModel):
    model_config = ConfigDict(extra="ignore")

    usd: Decimal | None = None


class DexTxnCounts(BaseModel):
    model_config = ConfigDict(extra="ignore")

    buys: int | None = None
    sells: int | None = None


class DexPair(BaseModel):
    """One trading pair as returned by DexScreener."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    chain_id: str = Field(default="", alias="chainId")
    dex_id: str | None = Field(default=None, alias="dexId")
    pair_address: str = Field(default="", alias="pairAddress")
    base_token: DexToken = Field(default_factory=DexToken, alias="baseToken")
    quote_token: DexToken = Field(default_factory=DexToken, alias="quoteToken")
    price_native: Decimal | None = Field(default=None, alias="priceNative")
    price_usd: Decimal | None = Field(default=None, alias="priceUsd")
    txns: dict[str, DexTxnCounts | None] = Field(default_factory=dict)
    volume: dict[str, Decimal | None] = Field(default_factory=dict)
    price_change: dict[str, Decimal | None] = Field(default_factory=dict, alias="priceChange")
    liquidity: DexLiquidity | None = None
    fdv: Decimal | None = None
    market_cap: Decimal | None = Field(default=None, alias="marketCap")


class DexSearchResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    pairs: list[dict[str, Any]] | None = None


# =============================================================================
# Adapter
# =============================================================================


class DexScreenerAdapter(BaseSourceAdapter):
    """Trending pairs for the configured chain from DexScreener search."""

    tag = "dexscreener"

    def __init__(
        self,
        fetcher: RetryingFetcher,
        *,
        search_query: str = "SOL",
        reference_mint: str = "",
    ):
        super().__init__(fetcher)
        self._query = search_query
        self._reference_mint = reference_mint

    async def _fetch(self, scope: FetchScope) -> list[AssetRecord]:
        payload = await self._fetcher.fetch("/latest/dex/search", {"q": self._query})
        response = DexSearchResponse.model_validate(payload)

        pairs: list[DexPair] = []
        for raw in response.pairs or []:
            if not isinstance(raw, dict) or raw.get("chainId") != scope.chain:
                continue
            try:
                pairs.append(DexPair.model_validate(raw))
            except ValidationError as e:
                logger.debug(f"Skipping malformed {self.tag} pair {raw.get('pairAddress')}: {e.error_count()} errors")

        if not pairs:
            return []

        fetched_at = datetime.now(UTC)
        batch_reference = self._batch_reference_usd(pairs)
        return [self._normalize(pair, batch_reference, fetched_at) for pair in pairs if pair.base_token.address]

    def _is_reference(self, token: DexToken) -> bool:
        if self._reference_mint and token.address == self._reference_mint:
            return True
        return (token.symbol or "").upper() in REFERENCE_SYMBOLS

    def _batch_reference_usd(self, pairs: list[DexPair]) -> Decimal:
        """Median reference-unit USD price observed across the payload."""
        observations: list[Decimal] = []
        for pair in pairs:
            if self._is_reference(pair.quote_token):
                derived = derive_reference_quote(pair.price_usd, pair.price_native)
                if derived > 0:
                    observations.append(derived)
            elif self._is_reference(pair.base_token) and pair.price_usd and pair.price_usd > 0:
                observations.append(pair.price_usd)
        if not observations:
            return ZERO
        return statistics.median(observations)

    def _normalize(self, pair: DexPair, batch_reference: Decimal, fetched_at: datetime) -> AssetRecord:
        if self._is_reference(pair.quote_token):
            native = pair.price_native
            reference_usd = derive_reference_quote(pair.price_usd, pair.price_native) or batch_reference
        else:
            native = None
            reference_usd = batch_reference

        txns_24h = pair.txns.get("h24")
        liquidity_usd = pair.liquidity.usd if pair.liquidity else None
        market_cap_usd = pair.market_cap if pair.market_cap is not None else pair.fdv

        return build_record(
            address=pair.base_token.address,
            source=self.tag,
            fetched_at=fetched_at,
            name=pair.base_token.name,
            ticker=pair.base_token.symbol,
            price=reference_price(native, pair.price_usd, reference_usd),
            market_cap=to_reference(market_cap_usd, reference_usd),
            volume=to_reference(pair.volume.get("h24"), reference_usd),
            liquidity=to_reference(liquidity_usd, reference_usd),
            transactions=count(txns_24h.buys, txns_24h.sells) if txns_24h else 0,
            change_1h=pair.price_change.get("h1"),
            change_24h=pair.price_change.get("h24"),
            protocol=pair.dex_id,
        )
