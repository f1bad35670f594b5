"""
Supervisor facade with orchestration state and method wiring.
"""

from __future__ import annotations

import asyncio
from typing import Any

from token_aggregator.app.supervisor.lifecycle import (
    _close_adapters,
    _close_infrastructure,
    _init_adapters,
    _init_infrastructure,
    _start_services,
    _stop_services,
    start,
    stop,
)
from token_aggregator.app.supervisor.loops import (
    _feed_loop,
    _heartbeat_loop,
    _refresh_loop,
    _sleep_or_shutdown,
    _start_loops,
)
from token_aggregator.app.supervisor.tasks import (
    SupervisedLoop,
    _cancel_loops,
    _launch,
    _on_loop_exit,
    _relaunch_after,
)
from token_aggregator.config.settings import Settings
from token_aggregator.ports.cache import CachePort
from token_aggregator.ports.source import SourceAdapterPort
from token_aggregator.services.aggregation import AggregationService
from token_aggregator.services.broadcaster import Broadcaster
from token_aggregator.services.cache_layer import CacheLayer
from token_aggregator.services.feed import LiveFeedService


class Supervisor:
    """
    Composition root and owner of all periodic work.

    Manages lifecycle of:
    - Durable cache
    - Source adapters (and their HTTP sessions)
    - CacheLayer, LiveFeedService, Broadcaster, AggregationService
    - Refresh, feed and heartbeat loops
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self._running = False
        self._shutdown_event = asyncio.Event()

        # Infrastructure
        self.cache: CachePort | None = None
        self.adapters: list[SourceAdapterPort] = []

        # Services
        self.cache_layer: CacheLayer | None = None
        self.broadcaster: Broadcaster | None = None
        self.feed: LiveFeedService | None = None
        self.aggregation: AggregationService | None = None

        # Periodic loops, keyed by name
        self._loops: dict[str, SupervisedLoop] = {}

        self._stopping = False

        self._stats = {
            "refreshes": 0,
            "errors": 0,
        }

    @property
    def is_running(self) -> bool:
        return self._running and not self._stopping

    def get_stats(self) -> dict[str, int]:
        return dict(self._stats)

    def loop_status(self) -> dict[str, dict[str, Any]]:
        """Per-loop liveness and failure counts."""
        return {
            name: {"alive": loop.alive, "failures": loop.failures, "restart_pending": loop.restart_pending}
            for name, loop in self._loops.items()
        }

    start = start
    stop = stop
    _init_infrastructure = _init_infrastructure
    _init_adapters = _init_adapters
    _start_services = _start_services
    _start_loops = _start_loops
    _stop_services = _stop_services
    _close_adapters = _close_adapters
    _close_infrastructure = _close_infrastructure

    _sleep_or_shutdown = _sleep_or_shutdown
    _refresh_loop = _refresh_loop
    _feed_loop = _feed_loop
    _heartbeat_loop = _heartbeat_loop

    _launch = _launch
    _on_loop_exit = _on_loop_exit
    _relaunch_after = _relaunch_after
    _cancel_loops = _cancel_loops
