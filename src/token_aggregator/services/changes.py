"""
Change detection between consecutive aggregates.

Per token, given previous snapshot P and current snapshot C:
- absent from P                                  -> new_token (only)
- |(C.price - P.price) / P.price| * 100 > 1      -> price_update
- (C.volume - P.volume) / P.volume * 100 > 50    -> volume_spike

Price and volume checks are independent. A previous value of zero yields
no event of that kind. Thresholds are strict.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime
from decimal import Decimal

from token_aggregator.domain.events import ChangeEvent, ChangeType
from token_aggregator.domain.models import Aggregate, AggregatedRecord
from token_aggregator.utils.decimals import pct_change


def _now() -> datetime:
    return datetime.now(UTC)


def classify(
    previous: AggregatedRecord | None,
    current: AggregatedRecord,
    *,
    price_threshold_pct: Decimal = Decimal("1"),
    volume_threshold_pct: Decimal = Decimal("50"),
) -> list[ChangeType]:
    """Change types for one token."""
    if previous is None:
        return [ChangeType.NEW_TOKEN]

    changes: list[ChangeType] = []

    price_pct = pct_change(previous.price_native, current.price_native)
    if price_pct is not None and abs(price_pct) > price_threshold_pct:
        changes.append(ChangeType.PRICE_UPDATE)

    volume_pct = pct_change(previous.volume_native, current.volume_native)
    if volume_pct is not None and volume_pct > volume_threshold_pct:
        changes.append(ChangeType.VOLUME_SPIKE)

    return changes


class ChangeDetector:
    """
    Holds the previous aggregate and diffs each new one against it.

    The previous snapshot is replaced wholesale after every detect() call,
    so tokens that drop out are forgotten and reappear as new_token.
    """

    def __init__(
        self,
        *,
        price_threshold_pct: Decimal = Decimal("1"),
        volume_threshold_pct: Decimal = Decimal("50"),
        clock: Callable[[], datetime] = _now,
    ):
        self._price_threshold = price_threshold_pct
        self._volume_threshold = volume_threshold_pct
        self._clock = clock
        self._previous = Aggregate.empty()

    @property
    def previous(self) -> Aggregate:
        return self._previous

    def detect(self, current: Aggregate) -> list[ChangeEvent]:
        """Events for current vs. the previous snapshot, in aggregate order."""
        emitted_at = self._clock()
        events: list[ChangeEvent] = []

        for record in current:
            for change in classify(
                self._previous.get(record.address),
                record,
                price_threshold_pct=self._price_threshold,
                volume_threshold_pct=self._volume_threshold,
            ):
                events.append(ChangeEvent(type=change, record=record, timestamp=emitted_at))

        self._previous = current
        return events

    def reset(self) -> None:
        self._previous = Aggregate.empty()
