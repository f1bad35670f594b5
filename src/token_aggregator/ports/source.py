"""
Source Port: Abstract interface for upstream market data providers.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from token_aggregator.domain.models import AssetRecord


@dataclass(frozen=True, slots=True)
class FetchScope:
    """
    What a single aggregation pass asks the sources for.

    `identities` lists tokens already known (configured watchlist plus the
    previous aggregate); identity-keyed sources such as price oracles only
    price these.
    """

    chain: str = "solana"
    identities: tuple[str, ...] = field(default_factory=tuple)


class SourceAdapterPort(ABC):
    """
    Converts one upstream's payload into canonical AssetRecords.

    fetch_assets never raises: failures are logged and yield an empty list.
    """

    # Enrichment records survive a merge only for tokens a listing source returned
    enrichment_only: bool = False

    @property
    @abstractmethod
    def source_tag(self) -> str:
        """Provenance tag stamped on every produced record."""
        ...

    @abstractmethod
    async def fetch_assets(self, scope: FetchScope) -> list[AssetRecord]:
        ...

    async def close(self) -> None:
        """Release transport resources (optional)."""
        return None
