"""
Prometheus metrics for observability.

Covers upstream fetches, the durable cache, aggregate refreshes and the
live change feed.

Usage:
    from token_aggregator.observability.metrics import record_fetch_attempt

    record_fetch_attempt(source="dexscreener", outcome="success")
"""

from __future__ import annotations

import time
from collections.abc import Generator
from contextlib import contextmanager

from prometheus_client import Counter, Gauge, Histogram

# =============================================================================
# Metric Definitions
# =============================================================================

fetch_attempts_total = Counter(
    "token_aggregator_fetch_attempts_total",
    "Upstream HTTP attempts by source and outcome",
    ["source", "outcome"],  # outcome: success, retry, rate_limited, permanent, exhausted
)

source_records_total = Counter(
    "token_aggregator_source_records_total",
    "Normalized records produced per source",
    ["source"],
)

source_failures_total = Counter(
    "token_aggregator_source_failures_total",
    "Source adapter fetches that were absorbed as empty results",
    ["source", "error_code"],
)

cache_operations_total = Counter(
    "token_aggregator_cache_operations_total",
    "Durable cache lookups by result",
    ["result"],  # result: hit, miss, unavailable
)

aggregate_size = Gauge(
    "token_aggregator_aggregate_size",
    "Number of tokens in the latest aggregate",
)

refresh_duration_seconds = Histogram(
    "token_aggregator_refresh_duration_seconds",
    "Time spent fanning out to sources and merging",
    buckets=(0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0),
)

change_events_total = Counter(
    "token_aggregator_change_events_total",
    "Change events emitted by the live feed",
    ["event_type"],
)

feed_listeners = Gauge(
    "token_aggregator_feed_listeners",
    "Live feed listeners",
    ["state"],  # state: connected, subscribed
)


# =============================================================================
# Helpers
# =============================================================================


def record_fetch_attempt(source: str, outcome: str) -> None:
    """Record one upstream HTTP attempt."""
    fetch_attempts_total.labels(source=source, outcome=outcome).inc()


def record_source_result(source: str, count: int, error_code: str | None = None) -> None:
    """Record the outcome of one adapter fetch."""
    if error_code:
        source_failures_total.labels(source=source, error_code=error_code).inc()
        return
    source_records_total.labels(source=source).inc(count)


def record_cache_lookup(result: str) -> None:
    """Record a durable cache lookup ("hit", "miss" or "unavailable")."""
    cache_operations_total.labels(result=result).inc()


def update_aggregate_size(size: int) -> None:
    aggregate_size.set(size)


def record_change_events(counts: dict[str, int]) -> None:
    """Record emitted change events keyed by event type."""
    for event_type, count in counts.items():
        if count:
            change_events_total.labels(event_type=event_type).inc(count)


def update_feed_listeners(connected: int, subscribed: int) -> None:
    feed_listeners.labels(state="connected").set(connected)
    feed_listeners.labels(state="subscribed").set(subscribed)


@contextmanager
def track_refresh_duration() -> Generator[None, None, None]:
    """Context manager observing the duration of an aggregate refresh."""
    start = time.monotonic()
    try:
        yield
    finally:
        refresh_duration_seconds.observe(time.monotonic() - start)
