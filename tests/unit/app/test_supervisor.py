"""
Unit tests for the Supervisor: lifecycle wiring and task restart policy.

Source adapters are replaced with fakes and the durable cache uses the
memory backend, so start/stop runs fully offline.
"""

from __future__ import annotations

import asyncio
from unittest.mock import MagicMock

import pytest

from token_aggregator.app.supervisor import Supervisor
from token_aggregator.app.supervisor.tasks import SupervisedLoop, restart_delay
from token_aggregator.config.settings import Settings


@pytest.fixture
def settings() -> Settings:
    return Settings(
        cache={"backend": "memory"},
        refresh={"interval_seconds": 60},
        feed={"update_interval_ms": 60_000},
        logging={"file_enabled": False},
    )


@pytest.fixture
def adapters(fake_adapter, make_asset):
    return [
        fake_adapter("dexscreener", [make_asset("A", "dexscreener")]),
        fake_adapter("geckoterminal", [make_asset("B", "geckoterminal")]),
    ]


@pytest.fixture
def supervisor(settings, adapters, monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(
        "token_aggregator.app.supervisor.lifecycle.build_source_adapters",
        lambda _settings: list(adapters),
    )
    return Supervisor(settings)


class TestLifecycle:
    """start() wires every component; stop() tears everything down."""

    @pytest.mark.asyncio
    async def test_start_warms_index_and_starts_loops(self, supervisor):
        await supervisor.start()
        try:
            assert supervisor.is_running
            assert set(supervisor.loop_status()) == {"aggregate_refresh", "live_feed", "heartbeat"}
            assert all(status["alive"] for status in supervisor.loop_status().values())
            assert supervisor.aggregation.get_token("A") is not None
            assert supervisor.aggregation.get_token("B") is not None
            assert supervisor.broadcaster.is_running
        finally:
            await supervisor.stop()

    @pytest.mark.asyncio
    async def test_stop_cancels_tasks_and_closes_adapters(self, supervisor, adapters):
        await supervisor.start()

        await supervisor.stop()

        assert supervisor.loop_status() == {}
        assert not supervisor.is_running
        for adapter in adapters:
            adapter.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_feed_loop_runs_first_cycle_on_start(self, supervisor):
        await supervisor.start()
        try:
            for _ in range(50):
                if supervisor.feed.cycles:
                    break
                await asyncio.sleep(0.01)
            assert supervisor.feed.cycles >= 1
        finally:
            await supervisor.stop()

    @pytest.mark.asyncio
    async def test_double_stop_is_safe(self, supervisor):
        await supervisor.start()

        await supervisor.stop()
        await supervisor.stop()

        assert not supervisor.is_running


class TestRestartPolicy:
    """Dead loops are relaunched with capped exponential backoff."""

    @pytest.mark.parametrize(("failures", "delay"), [(1, 2.0), (2, 4.0), (3, 8.0), (6, 60.0), (10, 60.0)])
    def test_restart_delay(self, failures, delay):
        assert restart_delay(failures) == delay

    @pytest.mark.asyncio
    async def test_crashed_loop_schedules_relaunch(self, settings):
        supervisor = Supervisor(settings)

        async def boom():
            raise RuntimeError("loop died")

        loop = SupervisedLoop("live_feed", boom)
        supervisor._loops["live_feed"] = loop
        supervisor._launch(loop)
        with pytest.raises(RuntimeError):
            await loop.task
        await asyncio.sleep(0)

        assert loop.failures == 1
        assert loop.restart_pending
        assert supervisor.get_stats()["errors"] == 1
        assert supervisor.loop_status()["live_feed"]["restart_pending"] is True
        await supervisor._cancel_loops()

    @pytest.mark.asyncio
    async def test_no_relaunch_during_shutdown(self, settings):
        supervisor = Supervisor(settings)
        supervisor._shutdown_event.set()
        loop = SupervisedLoop("live_feed", MagicMock())
        task = MagicMock()
        task.cancelled.return_value = False
        task.exception.return_value = RuntimeError("late")
        loop.task = task

        supervisor._on_loop_exit(loop, task)

        assert loop.failures == 0
        assert loop.restart_job is None

    @pytest.mark.asyncio
    async def test_relaunch_recreates_task_from_factory(self, settings):
        supervisor = Supervisor(settings)
        started = asyncio.Event()

        async def heartbeat():
            started.set()
            await asyncio.Event().wait()

        loop = SupervisedLoop("heartbeat", heartbeat, failures=1)
        supervisor._loops["heartbeat"] = loop

        await supervisor._relaunch_after(loop, 0)
        await asyncio.wait_for(started.wait(), timeout=1.0)

        assert loop.alive
        await supervisor._cancel_loops()
        assert supervisor._loops == {}

    @pytest.mark.asyncio
    async def test_cancel_loops_cancels_pending_relaunch(self, settings):
        supervisor = Supervisor(settings)
        loop = SupervisedLoop("aggregate_refresh", MagicMock())
        loop.restart_job = asyncio.create_task(supervisor._relaunch_after(loop, 30))
        supervisor._loops["aggregate_refresh"] = loop
        job = loop.restart_job

        await supervisor._cancel_loops()

        assert job.cancelled()
        loop.factory.assert_not_called()
