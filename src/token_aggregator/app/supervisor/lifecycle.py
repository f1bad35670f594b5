"""
Startup and shutdown lifecycle management.

These functions are used as methods of the Supervisor class.
They are defined externally and assigned to the class in manager.py.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from prometheus_client import start_http_server

from token_aggregator.adapters.cache import build_cache
from token_aggregator.app.wiring import build_cache_layer, build_change_detector, build_source_adapters
from token_aggregator.observability.logging import LOG_TAG_CACHE, get_logger
from token_aggregator.services.aggregation import AggregationService
from token_aggregator.services.broadcaster import Broadcaster
from token_aggregator.services.feed import LiveFeedService

if TYPE_CHECKING:
    from token_aggregator.app.supervisor.manager import Supervisor

logger = get_logger(__name__)


async def start(self: Supervisor) -> None:
    """Start all components in order."""
    if self._running:
        logger.warning("Supervisor already running")
        return

    logger.info("Supervisor starting...")
    self._running = True
    self._stopping = False
    self._shutdown_event.clear()

    try:
        # Phase 1: durable cache, metrics exporter
        await self._init_infrastructure()

        # Phase 2: source adapters
        await self._init_adapters()

        # Phase 3: cache layer, feed, query surface, initial aggregate
        await self._start_services()

        # Phase 4: periodic loops
        await self._start_loops()

        logger.info("Supervisor started successfully")

    except Exception as e:
        logger.exception(f"Supervisor start failed: {e}")
        await self.stop()
        raise


async def stop(self: Supervisor) -> None:
    """Stop all components gracefully."""
    if self._stopping:
        logger.debug("Supervisor already stopping")
        return

    self._stopping = True
    self._running = False
    logger.info("Supervisor stopping...")

    self._shutdown_event.set()

    await self._cancel_loops()
    await self._stop_services()
    await self._close_adapters()
    await self._close_infrastructure()

    logger.info("Supervisor stopped")


async def _init_infrastructure(self: Supervisor) -> None:
    logger.info("Initializing infrastructure...")

    Path("logs").mkdir(exist_ok=True)

    self.cache = build_cache(self.settings.cache)
    await self.cache.connect()
    logger.info(f"{LOG_TAG_CACHE} Durable cache backend={self.settings.cache.backend} available={self.cache.available}")

    if self.settings.metrics.enabled:
        start_http_server(self.settings.metrics.port)
        logger.info(f"Prometheus metrics exported on :{self.settings.metrics.port}")

    logger.info("Infrastructure initialized")


async def _init_adapters(self: Supervisor) -> None:
    logger.info("Initializing adapters...")
    self.adapters = build_source_adapters(self.settings)
    logger.info(f"Adapters initialized: {', '.join(a.source_tag for a in self.adapters)}")


async def _start_services(self: Supervisor) -> None:
    logger.info("Starting services...")

    self.cache_layer = build_cache_layer(self.settings, self.cache, self.adapters)

    self.broadcaster = Broadcaster()
    await self.broadcaster.start()

    self.feed = LiveFeedService(
        self.cache_layer,
        build_change_detector(self.settings),
        self.broadcaster,
        snapshot_size=self.settings.feed.snapshot_size,
    )

    self.aggregation = AggregationService(self.cache_layer, self.broadcaster)

    # Warm the index so the first listeners get a snapshot
    aggregate = await self.cache_layer.get_aggregate()
    logger.info(f"Initial aggregate ready: {len(aggregate)} tokens")

    logger.info("Services started")


async def _stop_services(self: Supervisor) -> None:
    logger.info("Stopping services...")

    if self.broadcaster:
        await self.broadcaster.stop()

    logger.info("Services stopped")


async def _close_adapters(self: Supervisor) -> None:
    logger.info("Closing adapters...")

    for adapter in self.adapters:
        try:
            await adapter.close()
        except Exception as e:
            logger.warning(f"Error closing {adapter.source_tag}: {e}")
    self.adapters = []

    logger.info("Adapters closed")


async def _close_infrastructure(self: Supervisor) -> None:
    logger.info("Closing infrastructure...")

    if self.cache:
        await self.cache.close()

    logger.info("Infrastructure closed")
