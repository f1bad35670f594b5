"""
Domain Events.

Change events are immutable records of what changed between two
consecutive aggregates. They are batched per feed cycle and delivered to
subscribed listeners.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from token_aggregator.domain.models import AggregatedRecord


class ChangeType(str, Enum):
    NEW_TOKEN = "new_token"
    PRICE_UPDATE = "price_update"
    VOLUME_SPIKE = "volume_spike"


@dataclass(frozen=True, slots=True)
class ChangeEvent:
    """A classified per-token delta carrying the full current record."""

    type: ChangeType
    record: AggregatedRecord
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def event_type(self) -> str:
        return self.type.value

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "token": self.record.to_dict(),
            "timestamp": self.timestamp.isoformat(),
        }
