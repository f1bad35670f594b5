"""
Live feed service.

One cycle: IDLE -> FETCHING -> COMPARING -> BROADCASTING -> IDLE.
A failure in any state is logged and the machine goes back to IDLE; the
next tick starts a fresh cycle.
"""

from __future__ import annotations

from collections import Counter

from token_aggregator.domain.events import ChangeEvent
from token_aggregator.domain.models import FeedState
from token_aggregator.observability.logging import LOG_TAG_FEED, get_logger
from token_aggregator.observability.metrics import record_change_events
from token_aggregator.ports.feed import FeedListener
from token_aggregator.services.broadcaster import Broadcaster
from token_aggregator.services.cache_layer import CacheLayer
from token_aggregator.services.changes import ChangeDetector

logger = get_logger(__name__)


class LiveFeedService:
    """Drives the change detector and hands event batches to the broadcaster."""

    def __init__(
        self,
        cache_layer: CacheLayer,
        detector: ChangeDetector,
        broadcaster: Broadcaster,
        *,
        snapshot_size: int = 30,
    ):
        self._cache_layer = cache_layer
        self._detector = detector
        self._broadcaster = broadcaster
        self._snapshot_size = snapshot_size
        self._state = FeedState.IDLE
        self._cycles = 0
        self._last_event_count = 0

    @property
    def state(self) -> FeedState:
        return self._state

    @property
    def cycles(self) -> int:
        return self._cycles

    @property
    def last_event_count(self) -> int:
        return self._last_event_count

    @property
    def broadcaster(self) -> Broadcaster:
        return self._broadcaster

    async def on_connect(self, listener: FeedListener) -> None:
        """Register a listener and send it the current top records."""
        snapshot = self._cache_layer.index.current.top(self._snapshot_size)
        await self._broadcaster.connect(listener, snapshot)

    async def run_cycle(self) -> list[ChangeEvent]:
        """Run one fetch/compare/broadcast cycle. Never raises."""
        if self._state != FeedState.IDLE:
            logger.debug(f"{LOG_TAG_FEED} Cycle skipped, still {self._state.value}")
            return []

        events: list[ChangeEvent] = []
        try:
            self._state = FeedState.FETCHING
            current = await self._cache_layer.get_aggregate()

            self._state = FeedState.COMPARING
            if not current and self._detector.previous:
                logger.warning(f"{LOG_TAG_FEED} Empty aggregate, keeping previous snapshot")
                return events
            events = self._detector.detect(current)

            self._state = FeedState.BROADCASTING
            if events:
                counts = Counter(event.event_type for event in events)
                record_change_events(dict(counts))
                await self._broadcaster.publish(events)
                logger.info(f"{LOG_TAG_FEED} Broadcast {len(events)} changes {dict(counts)}")
            else:
                logger.debug(f"{LOG_TAG_FEED} No changes in {len(current)} tokens")
        except Exception as e:
            logger.exception(f"{LOG_TAG_FEED} Cycle failed in state {self._state.value}: {e}")
            events = []
        finally:
            self._state = FeedState.IDLE
            self._cycles += 1
            self._last_event_count = len(events)

        return events
