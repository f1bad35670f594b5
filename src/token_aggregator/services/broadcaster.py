"""
Live feed broadcaster.

Tracks connected listeners and the subscribed group, sends the initial
snapshot on connect and delivers each cycle's change batch to subscribers.
Delivery runs on a background processor task so a slow listener never
blocks the diff cycle; listener failures are logged (not propagated).
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from typing import Any

from token_aggregator.domain.events import ChangeEvent
from token_aggregator.domain.models import AggregatedRecord
from token_aggregator.observability.logging import LOG_TAG_FEED, get_logger
from token_aggregator.observability.metrics import update_feed_listeners
from token_aggregator.ports.feed import FeedListener

logger = get_logger(__name__)

MSG_INITIAL_DATA = "initial_data"
MSG_TOKEN_UPDATE = "token_update"


def _now() -> datetime:
    return datetime.now(UTC)


class Broadcaster:
    """
    Pub/sub hub for live feed listeners.

    Connected listeners receive the initial snapshot. Only subscribed
    listeners receive token_update batches.
    """

    def __init__(self, *, clock: Callable[[], datetime] = _now):
        self._clock = clock
        self._listeners: dict[str, FeedListener] = {}
        self._subscribed: set[str] = set()
        self._running = False
        self._queue: asyncio.Queue[list[dict[str, Any]]] = asyncio.Queue()
        self._processor_task: asyncio.Task | None = None

    @property
    def connected_count(self) -> int:
        return len(self._listeners)

    @property
    def subscribed_count(self) -> int:
        return len(self._subscribed)

    @property
    def is_running(self) -> bool:
        return self._running

    def connected_clients(self) -> list[str]:
        return list(self._listeners)

    async def start(self) -> None:
        """Start the delivery processor."""
        if self._running:
            return

        self._running = True
        self._processor_task = asyncio.create_task(
            self._process_batches(),
            name="feed_broadcaster"
        )
        logger.debug(f"{LOG_TAG_FEED} Broadcaster started")

    async def stop(self) -> None:
        """Stop the processor and drain pending batches."""
        if not self._running:
            return

        # Let the processor drain what is already queued
        try:
            await asyncio.wait_for(self._queue.join(), timeout=5.0)
        except TimeoutError:
            logger.warning(f"{LOG_TAG_FEED} Dropping {self._queue.qsize()} undelivered batches on shutdown")

        self._running = False

        if self._processor_task:
            self._processor_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._processor_task
            self._processor_task = None

        logger.debug(f"{LOG_TAG_FEED} Broadcaster stopped")

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------

    async def connect(self, listener: FeedListener, snapshot: Sequence[AggregatedRecord] = ()) -> None:
        """Register a listener and send it the initial snapshot."""
        self._listeners[listener.listener_id] = listener
        self._update_gauges()
        logger.info(f"{LOG_TAG_FEED} Client connected: {listener.listener_id}")

        payload = {
            "tokens": [record.to_dict() for record in snapshot],
            "timestamp": self._clock().isoformat(),
        }
        await self._safe_send(listener, MSG_INITIAL_DATA, payload)

    def disconnect(self, listener_id: str) -> None:
        self._listeners.pop(listener_id, None)
        self._subscribed.discard(listener_id)
        self._update_gauges()
        logger.info(f"{LOG_TAG_FEED} Client disconnected: {listener_id}")

    def subscribe(self, listener_id: str) -> bool:
        """Join the update group. Unknown listeners are ignored."""
        if listener_id not in self._listeners:
            logger.debug(f"{LOG_TAG_FEED} Ignoring subscribe from unknown client {listener_id}")
            return False
        self._subscribed.add(listener_id)
        self._update_gauges()
        logger.debug(f"{LOG_TAG_FEED} Client {listener_id} subscribed to updates")
        return True

    def unsubscribe(self, listener_id: str) -> None:
        self._subscribed.discard(listener_id)
        self._update_gauges()
        logger.debug(f"{LOG_TAG_FEED} Client {listener_id} unsubscribed from updates")

    def is_subscribed(self, listener_id: str) -> bool:
        return listener_id in self._subscribed

    # ------------------------------------------------------------------
    # Publishing
    # ------------------------------------------------------------------

    async def publish(self, events: Sequence[ChangeEvent]) -> bool:
        """
        Queue one token_update batch.

        Empty batches are not sent. Returns True when a batch was queued
        (or delivered directly when the processor is not running).
        """
        if not events:
            return False

        batch = [event.to_dict() for event in events]
        if not self._running:
            await self._deliver(batch)
            return True

        await self._queue.put(batch)
        return True

    async def _process_batches(self) -> None:
        while self._running:
            try:
                batch = await asyncio.wait_for(self._queue.get(), timeout=1.0)
                try:
                    await self._deliver(batch)
                finally:
                    self._queue.task_done()
            except TimeoutError:
                continue
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.exception(f"{LOG_TAG_FEED} Broadcast processor error: {e}")

    async def _deliver(self, batch: list[dict[str, Any]]) -> None:
        targets = [self._listeners[lid] for lid in list(self._subscribed) if lid in self._listeners]
        if not targets:
            logger.debug(f"{LOG_TAG_FEED} No subscribers for batch of {len(batch)} events")
            return

        try:
            async with asyncio.TaskGroup() as tg:
                for listener in targets:
                    tg.create_task(self._safe_send(listener, MSG_TOKEN_UPDATE, batch))
        except* Exception as eg:
            logger.error(f"{LOG_TAG_FEED} Delivery group failed: {eg.exceptions!r}")

        logger.debug(f"{LOG_TAG_FEED} Delivered {len(batch)} events to {len(targets)} subscribers")

    async def _safe_send(self, listener: FeedListener, message: str, payload: Any) -> None:
        """Send with exception isolation."""
        try:
            await listener.send(message, payload)
        except Exception as e:
            logger.warning(f"{LOG_TAG_FEED} Send {message} to {listener.listener_id} failed: {e}")

    def _update_gauges(self) -> None:
        update_feed_listeners(self.connected_count, self.subscribed_count)
