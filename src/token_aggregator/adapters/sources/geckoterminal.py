"""
GeckoTerminal pool-index source.

  GET https://api.geckoterminal.com/api/v2/networks/{chain}/trending_pools
      ?include=base_token,dex&page={n}

JSON:API shaped: pools live in `data`, token and dex resources in
`included`, linked through `relationships`. Pool ids are prefixed with the
network id (`solana_<address>`), which is how other chains are filtered.
The base token's native-currency price is the reference-unit price; the
reference USD price is recovered from the base token's USD/native ratio.
"""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

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
from token_aggregator.ports.source import FetchScope

# =============================================================================
# Raw payload schema
# =============================================================================


class ResourceRef(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = ""
    type: str = ""


class Relationship(BaseModel):
    model_config = ConfigDict(extra="ignore")

    data: ResourceRef | None = None


class TxnCounts(BaseModel):
    model_config = ConfigDict(extra="ignore")

    buys: int | None = None
    sells: int | None = None


class PoolAttributes(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str | None = None
    address: str | None = None
    base_token_price_usd: Decimal | None = None
    base_token_price_native_currency: Decimal | None = None
    fdv_usd: Decimal | None = None
    market_cap_usd: Decimal | None = None
    reserve_in_usd: Decimal | None = None
    volume_usd: dict[str, Decimal | None] = Field(default_factory=dict)
    price_change_percentage: dict[str, Decimal | None] = Field(default_factory=dict)
    transactions: dict[str, TxnCounts | None] = Field(default_factory=dict)


class Pool(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = ""
    type: str = "pool"
    attributes: PoolAttributes = Field(default_factory=PoolAttributes)
    relationships: dict[str, Relationship] = Field(default_factory=dict)

    def related_id(self, name: str) -> str:
        rel = self.relationships.get(name)
        return rel.data.id if rel and rel.data else ""


class IncludedResource(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = ""
    type: str = ""
    attributes: dict[str, Any] = Field(default_factory=dict)


class PoolIndexResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    data: list[Pool] = Field(default_factory=list)
    included: list[IncludedResource] = Field(default_factory=list)


# =============================================================================
# Adapter
# =============================================================================


class GeckoTerminalAdapter(BaseSourceAdapter):
    """Trending pools for the configured network from GeckoTerminal."""

    tag = "geckoterminal"

    def __init__(self, fetcher: RetryingFetcher, *, page: int = 1):
        super().__init__(fetcher)
        self._page = page

    async def _fetch(self, scope: FetchScope) -> list[AssetRecord]:
        payload = await self._fetcher.fetch(
            f"/networks/{scope.chain}/trending_pools",
            {"include": "base_token,dex", "page": self._page},
        )
        response = PoolIndexResponse.model_validate(payload)

        prefix = f"{scope.chain}_"
        pools = [pool for pool in response.data if pool.id.startswith(prefix)]
        if not pools:
            return []

        included = {(res.type, res.id): res.attributes for res in response.included}
        fetched_at = datetime.now(UTC)

        records = []
        for pool in pools:
            record = self._normalize(pool, included, prefix, fetched_at)
            if record is not None:
                records.append(record)
        return records

    def _normalize(
        self,
        pool: Pool,
        included: dict[tuple[str, str], dict[str, Any]],
        prefix: str,
        fetched_at: datetime,
    ) -> AssetRecord | None:
        token_ref = pool.related_id("base_token")
        token = included.get(("token", token_ref), {})
        address = str(token.get("address") or token_ref.removeprefix(prefix))
        if not address:
            return None

        dex = included.get(("dex", pool.related_id("dex")), {})
        attrs = pool.attributes
        reference_usd = derive_reference_quote(attrs.base_token_price_usd, attrs.base_token_price_native_currency)
        market_cap_usd = attrs.market_cap_usd if attrs.market_cap_usd is not None else attrs.fdv_usd
        txns_24h = attrs.transactions.get("h24")

        return build_record(
            address=address,
            source=self.tag,
            fetched_at=fetched_at,
            name=token.get("name"),
            ticker=token.get("symbol"),
            price=reference_price(attrs.base_token_price_native_currency, attrs.base_token_price_usd, reference_usd),
            market_cap=to_reference(market_cap_usd, reference_usd),
            volume=to_reference(attrs.volume_usd.get("h24"), reference_usd),
            liquidity=to_reference(attrs.reserve_in_usd, reference_usd),
            transactions=count(txns_24h.buys, txns_24h.sells) if txns_24h else 0,
            change_1h=attrs.price_change_percentage.get("h1"),
            change_24h=attrs.price_change_percentage.get("h24"),
            change_7d=attrs.price_change_percentage.get("d7"),
            protocol=dex.get("name") or pool.related_id("dex"),
        )
