"""
Supervised periodic loops: aggregate refresh, live feed and heartbeat.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from token_aggregator.app.supervisor.tasks import SupervisedLoop
from token_aggregator.observability.logging import LOG_TAG_FEED, LOG_TAG_HEALTH, get_logger

if TYPE_CHECKING:
    from token_aggregator.app.supervisor.manager import Supervisor

logger = get_logger(__name__)

HEARTBEAT_INTERVAL_SECONDS = 60.0


async def _start_loops(self: Supervisor) -> None:
    """Start the refresh, feed and heartbeat loops as supervised tasks."""
    logger.info("Starting main loops...")

    self._loops = {
        "aggregate_refresh": SupervisedLoop("aggregate_refresh", self._refresh_loop),
        "live_feed": SupervisedLoop("live_feed", self._feed_loop),
        "heartbeat": SupervisedLoop("heartbeat", self._heartbeat_loop),
    }
    for loop in self._loops.values():
        self._launch(loop)

    logger.info("Main loops started")


async def _sleep_or_shutdown(self: Supervisor, seconds: float) -> bool:
    """Wait for the interval; True when shutdown was signalled instead."""
    try:
        await asyncio.wait_for(self._shutdown_event.wait(), timeout=seconds)
        return True
    except TimeoutError:
        return False


async def _refresh_loop(self: Supervisor) -> None:
    """Recompute the aggregate every refresh interval."""
    interval = self.settings.refresh.interval_seconds
    logger.info(f"Refresh loop started (every {interval:.0f}s)")

    while not self._shutdown_event.is_set():
        try:
            if await self._sleep_or_shutdown(interval):
                break
            aggregate = await self.cache_layer.refresh()
            self._stats["refreshes"] += 1
            logger.debug(f"Refreshed aggregate: {len(aggregate)} tokens")
        except asyncio.CancelledError:
            break
        except Exception as e:
            self._stats["errors"] += 1
            logger.exception(f"Refresh loop error: {e}")


async def _feed_loop(self: Supervisor) -> None:
    """Run one live feed cycle per update interval."""
    interval = self.settings.feed_interval_seconds
    logger.info(f"{LOG_TAG_FEED} Feed loop started (every {interval:.1f}s)")

    while not self._shutdown_event.is_set():
        try:
            await self.feed.run_cycle()
            if await self._sleep_or_shutdown(interval):
                break
        except asyncio.CancelledError:
            break
        except Exception as e:
            self._stats["errors"] += 1
            logger.exception(f"{LOG_TAG_FEED} Feed loop error: {e}")


async def _heartbeat_loop(self: Supervisor) -> None:
    """Log a one-line health summary."""
    logger.info("Heartbeat loop started")

    while not self._shutdown_event.is_set():
        try:
            report = self.aggregation.health()
            state_icon = "[OK]" if report["status"] == "ok" else "[WARN]"
            logger.info(
                f"{LOG_TAG_HEALTH} {state_icon} Tokens: {report['tokens_indexed']} | "
                f"Cache: {'up' if report['cache_available'] else 'down'} | "
                f"Listeners: {report['connected_listeners']} ({report['subscribed_listeners']} subscribed) | "
                f"Cycles: {self.feed.cycles}"
                + (f" | Errors: {self._stats['errors']}" if self._stats["errors"] else "")
            )
            if await self._sleep_or_shutdown(HEARTBEAT_INTERVAL_SECONDS):
                break
        except asyncio.CancelledError:
            break
        except Exception as e:
            logger.warning(f"Heartbeat error: {e}")
            if await self._sleep_or_shutdown(HEARTBEAT_INTERVAL_SECONDS):
                break
