"""
Unit tests for RetryingFetcher.

The single-request seam `_send` is replaced so no HTTP traffic happens;
`sleep` is injected so backoff waits are recorded instead of slept.
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import aiohttp
import pytest

from token_aggregator.adapters.http.fetcher import RetryingFetcher, _clean_params
from token_aggregator.domain.errors import (
    MalformedPayloadError,
    PermanentFetchError,
    RateLimitedError,
    TransientFetchError,
)


def _fetcher(send: AsyncMock, *, max_attempts: int = 3, base_delay: float = 1.0, jitter: float = 0.0):
    sleep = AsyncMock()
    fetcher = RetryingFetcher(
        "https://api.example.test/",
        source="test",
        max_attempts=max_attempts,
        base_delay=base_delay,
        jitter=jitter,
        sleep=sleep,
    )
    fetcher._send = send
    return fetcher, sleep


# =============================================================================
# Success path
# =============================================================================


class TestFetchSuccess:
    """A 2xx response is decoded and returned after one attempt."""

    @pytest.mark.asyncio
    async def test_returns_decoded_json(self):
        send = AsyncMock(return_value=(200, '{"pairs": [1, 2]}'))
        fetcher, sleep = _fetcher(send)

        payload = await fetcher.fetch("/latest/dex/search", {"q": "SOL"})

        assert payload == {"pairs": [1, 2]}
        send.assert_awaited_once_with("https://api.example.test/latest/dex/search", {"q": "SOL"})
        sleep.assert_not_awaited()
        assert fetcher.get_stats()["successful_requests"] == 1

    @pytest.mark.asyncio
    async def test_recovers_after_transient_failure(self):
        send = AsyncMock(side_effect=[(503, ""), (200, "[]")])
        fetcher, sleep = _fetcher(send)

        assert await fetcher.fetch("/x") == []
        assert send.await_count == 2
        sleep.assert_awaited_once()


# =============================================================================
# Retry budget
# =============================================================================


class TestRetryBudget:
    """Transient failures consume the whole budget; others do not retry."""

    @pytest.mark.asyncio
    async def test_server_errors_attempted_exactly_max_attempts(self):
        send = AsyncMock(return_value=(500, "boom"))
        fetcher, sleep = _fetcher(send, max_attempts=3)

        with pytest.raises(TransientFetchError) as exc_info:
            await fetcher.fetch("/x")

        assert send.await_count == 3
        # No wait after the final attempt
        assert sleep.await_count == 2
        assert exc_info.value.attempts == 3
        assert exc_info.value.status == 500

    @pytest.mark.asyncio
    async def test_network_errors_attempted_exactly_max_attempts(self):
        send = AsyncMock(side_effect=aiohttp.ClientConnectionError("refused"))
        fetcher, _ = _fetcher(send, max_attempts=4)

        with pytest.raises(TransientFetchError):
            await fetcher.fetch("/x")

        assert send.await_count == 4

    @pytest.mark.asyncio
    async def test_timeouts_are_transient(self):
        send = AsyncMock(side_effect=TimeoutError())
        fetcher, _ = _fetcher(send, max_attempts=2)

        with pytest.raises(TransientFetchError):
            await fetcher.fetch("/x")

        assert send.await_count == 2

    @pytest.mark.asyncio
    async def test_rate_limit_attempted_once(self):
        send = AsyncMock(return_value=(429, "slow down"))
        fetcher, sleep = _fetcher(send, max_attempts=5)

        with pytest.raises(RateLimitedError) as exc_info:
            await fetcher.fetch("/x")

        assert send.await_count == 1
        sleep.assert_not_awaited()
        assert exc_info.value.error_code == "RATE_LIMITED"
        assert fetcher.get_stats()["rate_limited"] == 1

    @pytest.mark.asyncio
    async def test_client_error_not_retried(self):
        send = AsyncMock(return_value=(404, "not found"))
        fetcher, _ = _fetcher(send)

        with pytest.raises(PermanentFetchError) as exc_info:
            await fetcher.fetch("/x")

        assert send.await_count == 1
        assert exc_info.value.details["status"] == 404

    @pytest.mark.asyncio
    async def test_invalid_json_is_malformed_payload(self):
        send = AsyncMock(return_value=(200, "<html>oops</html>"))
        fetcher, _ = _fetcher(send)

        with pytest.raises(MalformedPayloadError) as exc_info:
            await fetcher.fetch("/x")

        assert send.await_count == 1
        # Malformed payloads are permanent failures
        assert isinstance(exc_info.value, PermanentFetchError)

    def test_max_attempts_must_be_positive(self):
        with pytest.raises(ValueError):
            RetryingFetcher("https://api.example.test", max_attempts=0)


# =============================================================================
# Backoff
# =============================================================================


class TestBackoff:
    """Delay doubles per attempt; jitter is bounded."""

    def test_exponential_without_jitter(self):
        fetcher, _ = _fetcher(AsyncMock(), base_delay=1.0, jitter=0.0)

        assert fetcher.backoff_delay(0) == 1.0
        assert fetcher.backoff_delay(1) == 2.0
        assert fetcher.backoff_delay(2) == 4.0

    def test_jitter_bounded(self):
        fetcher, _ = _fetcher(AsyncMock(), base_delay=0.5, jitter=1.0)

        for _ in range(50):
            delay = fetcher.backoff_delay(1)
            assert 1.0 <= delay <= 2.0

    @pytest.mark.asyncio
    async def test_sleeps_follow_backoff_schedule(self):
        send = AsyncMock(return_value=(502, ""))
        fetcher, sleep = _fetcher(send, max_attempts=3, base_delay=1.0, jitter=0.0)

        with pytest.raises(TransientFetchError):
            await fetcher.fetch("/x")

        assert [call.args[0] for call in sleep.await_args_list] == [1.0, 2.0]


class TestCleanParams:
    def test_drops_none_and_stringifies(self):
        assert _clean_params({"a": None, "b": True, "c": 2, "ids": ["x", "y"]}) == {
            "b": "true",
            "c": "2",
            "ids": "x,y",
        }

    def test_empty(self):
        assert _clean_params(None) == {}
