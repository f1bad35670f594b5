"""
Jupiter price-oracle source.

  GET https://price.jup.ag/v4/price?ids={mint,...}&vsToken={reference mint}

The oracle is keyed by identity, so it runs as an enrichment source: it
prices the watchlist and the previous aggregate, and the cache layer keeps
only prices for tokens a listing source still reports. Prices come back
denominated in the vsToken, i.e. already in the reference unit. The oracle
reports no market metrics; those stay zero and lose every max() merge. A
failed chunk is skipped and the chunks already priced are kept.
"""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from token_aggregator.adapters.http.fetcher import RetryingFetcher
from token_aggregator.adapters.sources.base import BaseSourceAdapter, build_record
from token_aggregator.domain.errors import AggregatorError
from token_aggregator.domain.models import AssetRecord
from token_aggregator.observability.logging import LOG_TAG_FETCH, get_logger
from token_aggregator.ports.source import FetchScope
from token_aggregator.utils.decimals import safe_decimal

logger = get_logger(__name__)

SUPPORTED_CHAIN = "solana"

# =============================================================================
# Raw payload schema
# =============================================================================


class OraclePrice(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str = ""
    mint_symbol: str | None = Field(default=None, alias="mintSymbol")
    vs_token: str | None = Field(default=None, alias="vsToken")
    vs_token_symbol: str | None = Field(default=None, alias="vsTokenSymbol")
    price: Decimal | None = None


class OraclePriceResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    data: dict[str, OraclePrice | None] = Field(default_factory=dict)


# =============================================================================
# Adapter
# =============================================================================


class JupiterAdapter(BaseSourceAdapter):
    """Reference-unit prices for known identities."""

    tag = "jupiter"
    enrichment_only = True

    def __init__(self, fetcher: RetryingFetcher, *, reference_mint: str, batch_size: int = 100):
        super().__init__(fetcher)
        self._reference_mint = reference_mint
        self._batch_size = max(1, batch_size)

    async def _fetch(self, scope: FetchScope) -> list[AssetRecord]:
        if scope.chain != SUPPORTED_CHAIN or not scope.identities:
            return []

        identities = list(dict.fromkeys(scope.identities))
        fetched_at = datetime.now(UTC)
        records: list[AssetRecord] = []

        for start in range(0, len(identities), self._batch_size):
            chunk = identities[start : start + self._batch_size]
            try:
                payload = await self._fetcher.fetch(
                    "/v4/price",
                    {"ids": ",".join(chunk), "vsToken": self._reference_mint},
                )
            except AggregatorError as e:
                logger.warning(f"{LOG_TAG_FETCH} {self.tag} chunk of {len(chunk)} skipped: {e.to_dict()}")
                continue
            response = OraclePriceResponse.model_validate(payload)

            for identity in chunk:
                quote = response.data.get(identity)
                if quote is None:
                    continue
                price = safe_decimal(quote.price)
                if price <= 0:
                    continue
                records.append(
                    build_record(
                        address=identity,
                        source=self.tag,
                        fetched_at=fetched_at,
                        ticker=quote.mint_symbol,
                        price=price,
                    )
                )

        return records
