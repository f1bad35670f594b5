"""
Entry points for CLI commands.

Each command sets up the environment and runs the appropriate logic.
"""

from __future__ import annotations

import asyncio
import signal
import sys
from pathlib import Path

# Load .env file BEFORE importing settings
from dotenv import load_dotenv

for env_path in [
    Path.cwd() / ".env",
    Path(__file__).parent.parent.parent.parent / ".env",  # Project root
]:
    if env_path.exists():
        load_dotenv(env_path)
        break
else:
    load_dotenv()

from token_aggregator.config.settings import Settings, get_settings  # noqa: E402
from token_aggregator.domain.models import FilterSpec  # noqa: E402
from token_aggregator.observability.logging import get_logger, setup_logging  # noqa: E402


def _log_startup_banner(logger, *, env: str, settings: Settings) -> None:
    cache = settings.cache
    logger.warning("========================================================")
    logger.warning("STARTING TOKEN AGGREGATOR")
    logger.warning(
        f"env={env} | chain={settings.sources.chain} | "
        f"cache={cache.backend if cache.enabled else 'disabled'} ttl={cache.ttl_seconds}s"
    )
    logger.warning(
        f"refresh every {settings.refresh.interval_seconds:.0f}s | "
        f"feed every {settings.feed_interval_seconds:.1f}s | "
        f"retry max_attempts={settings.retry.max_attempts} base_delay={settings.retry.base_delay_ms}ms"
    )
    logger.warning("========================================================")


async def run_service(env: str = "development") -> int:
    """
    Main service entry point.

    Starts the supervisor and waits for SIGINT/SIGTERM.

    Returns:
        Exit code: 0 = clean shutdown, 1 = fatal error.
    """
    settings = get_settings(env)
    setup_logging(settings)
    logger = get_logger(__name__)

    _log_startup_banner(logger, env=env, settings=settings)

    from token_aggregator.app.supervisor import Supervisor

    supervisor = Supervisor(settings)

    shutdown_event = asyncio.Event()
    received_signal: list[str] = []

    def handle_signal(sig: signal.Signals) -> None:
        received_signal.append(sig.name)
        shutdown_event.set()

    if sys.platform == "win32":
        # Do not log inside the handler (reentrant writes to stdout)
        def win_handler(signum: int, frame) -> None:
            received_signal.append(f"signal-{signum}")
            shutdown_event.set()

        signal.signal(signal.SIGINT, win_handler)
        signal.signal(signal.SIGTERM, win_handler)
    else:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, lambda s=sig: handle_signal(s))

    try:
        await supervisor.start()
        await shutdown_event.wait()

        if received_signal:
            logger.info(f"Received {received_signal[0]}, initiating shutdown...")

    except (KeyboardInterrupt, asyncio.CancelledError):
        logger.info("Shutdown signal received, shutting down...")
    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        return 1
    finally:
        await supervisor.stop()

    logger.info("Aggregator stopped cleanly")
    return 0


async def run_snapshot(env: str = "development", spec: FilterSpec | None = None) -> int:
    """Run one aggregation pass and print a page of tokens."""
    settings = get_settings(env)
    setup_logging(settings)
    logger = get_logger(__name__)

    from token_aggregator.adapters.cache import build_cache
    from token_aggregator.app.wiring import build_cache_layer, build_source_adapters
    from token_aggregator.services.aggregation import AggregationService
    from token_aggregator.ui.table import render_page

    spec = spec or FilterSpec()
    cache = build_cache(settings.cache)
    adapters = build_source_adapters(settings)

    try:
        await cache.connect()
        service = AggregationService(build_cache_layer(settings, cache, adapters))
        page = await service.list_tokens(spec)
    finally:
        for adapter in adapters:
            await adapter.close()
        await cache.close()

    if not page.total:
        logger.error("No tokens aggregated; all sources failed or returned nothing")
        return 1

    render_page(page, sort_by=spec.sort_by)
    return 0


async def run_doctor(env: str = "development") -> int:
    """Run preflight checks against the durable cache and every source."""
    settings = get_settings(env)
    setup_logging(settings)
    logger = get_logger(__name__)

    from token_aggregator.adapters.cache import build_cache
    from token_aggregator.app.wiring import build_source_adapters
    from token_aggregator.ports.source import FetchScope

    logger.info("Running preflight checks...")

    checks_passed = 0
    checks_failed = 0

    # Check 1: durable cache
    cache = build_cache(settings.cache)
    await cache.connect()
    if not settings.cache.enabled:
        logger.info("[OK] Durable cache disabled by configuration")
        checks_passed += 1
    elif cache.available:
        logger.info(f"[OK] Durable cache reachable ({settings.cache.backend})")
        checks_passed += 1
    else:
        logger.error(f"[FAIL] Durable cache unreachable ({settings.cache.backend})")
        checks_failed += 1
    await cache.close()

    # Check 2..n: each source returns records
    adapters = build_source_adapters(settings)
    scope = FetchScope(chain=settings.sources.chain, identities=(settings.sources.reference_mint,))
    try:
        for adapter in adapters:
            records = await adapter.fetch_assets(scope)
            if records:
                logger.info(f"[OK] {adapter.source_tag}: {len(records)} records")
                checks_passed += 1
            else:
                logger.error(f"[FAIL] {adapter.source_tag}: no records")
                checks_failed += 1
    finally:
        for adapter in adapters:
            await adapter.close()

    # Check n+1: logs directory
    logs_dir = Path("logs")
    if not logs_dir.exists():
        logs_dir.mkdir(parents=True, exist_ok=True)
    logger.info("[OK] Logs directory exists")
    checks_passed += 1

    logger.info(f"Preflight: {checks_passed} passed, {checks_failed} failed")

    return 0 if checks_failed == 0 else 1
