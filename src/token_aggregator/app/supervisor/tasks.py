"""
Supervised loop bookkeeping.

Each periodic loop (aggregate refresh, live feed, heartbeat) is tracked as a
SupervisedLoop. The loops only return on shutdown, so any other exit counts
as a failure: the loop is relaunched from its factory after a capped
exponential delay.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from functools import partial
from typing import TYPE_CHECKING, Any

from token_aggregator.observability.logging import get_logger

if TYPE_CHECKING:
    from token_aggregator.app.supervisor.manager import Supervisor

logger = get_logger(__name__)

MAX_RESTART_DELAY_SECONDS = 60.0

LoopFactory = Callable[[], Coroutine[Any, Any, None]]


@dataclass(slots=True)
class SupervisedLoop:
    """One named loop, its running task and its failure count."""

    name: str
    factory: LoopFactory
    task: asyncio.Task | None = None
    restart_job: asyncio.Task | None = None
    failures: int = 0

    @property
    def alive(self) -> bool:
        return self.task is not None and not self.task.done()

    @property
    def restart_pending(self) -> bool:
        return self.restart_job is not None and not self.restart_job.done()


def restart_delay(failures: int) -> float:
    """2s, 4s, 8s ... capped at 60s."""
    return min(MAX_RESTART_DELAY_SECONDS, 2.0 ** min(failures, 6))


def _launch(self: Supervisor, loop: SupervisedLoop) -> None:
    loop.task = asyncio.create_task(loop.factory(), name=loop.name)
    loop.task.add_done_callback(partial(self._on_loop_exit, loop))


def _on_loop_exit(self: Supervisor, loop: SupervisedLoop, task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()

    # A replaced task, or an exit caused by shutdown, needs no relaunch
    if task is not loop.task or self._stopping or self._shutdown_event.is_set():
        if exc:
            logger.debug(f"Loop {loop.name} ended during shutdown: {exc!r}")
        return

    loop.failures += 1
    self._stats["errors"] += 1
    delay = restart_delay(loop.failures)
    if exc:
        logger.error(f"Loop {loop.name} died ({exc!r}); relaunch #{loop.failures} in {delay:.0f}s", exc_info=exc)
    else:
        logger.error(f"Loop {loop.name} returned unexpectedly; relaunch #{loop.failures} in {delay:.0f}s")

    if loop.restart_pending:
        loop.restart_job.cancel()
    loop.restart_job = asyncio.get_running_loop().create_task(
        self._relaunch_after(loop, delay),
        name=f"relaunch_{loop.name}",
    )


async def _relaunch_after(self: Supervisor, loop: SupervisedLoop, delay_seconds: float) -> None:
    await asyncio.sleep(delay_seconds)
    if self._stopping or self._shutdown_event.is_set():
        return
    logger.warning(f"Relaunching loop {loop.name}")
    self._launch(loop)


async def _cancel_loops(self: Supervisor) -> None:
    """Cancel pending relaunches and running loops, then forget them."""
    pending: list[asyncio.Task] = []
    for loop in self._loops.values():
        for task in (loop.restart_job, loop.task):
            if task is not None and not task.done():
                task.cancel()
                pending.append(task)

    if pending:
        logger.info(f"Cancelling {len(pending)} loop tasks...")
        results = await asyncio.gather(*pending, return_exceptions=True)
        for task, result in zip(pending, results, strict=True):
            if isinstance(result, Exception):
                logger.error(f"Task {task.get_name()} raised while cancelling: {result!r}")

    self._loops.clear()
