"""
Retrying HTTP fetcher for unreliable upstream APIs.

One instance per upstream base URL. Each attempt is bounded by a fixed
timeout; retryable failures back off exponentially with jitter:

    delay = base_delay * 2**attempt + uniform(0, jitter)

Error classification:
- 429            -> RateLimitedError, raised immediately (caller decides)
- 5xx, timeouts,
  connection loss -> retried, TransientFetchError once the budget is spent
- other 4xx      -> PermanentFetchError, raised immediately
- invalid JSON   -> MalformedPayloadError, raised immediately
"""

from __future__ import annotations

import asyncio
import json
import random
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

import aiohttp

from token_aggregator.domain.errors import (
    FetchError,
    MalformedPayloadError,
    PermanentFetchError,
    RateLimitedError,
    TransientFetchError,
)
from token_aggregator.observability.logging import LOG_TAG_FETCH, get_logger
from token_aggregator.observability.metrics import record_fetch_attempt

logger = get_logger(__name__)

SleepFn = Callable[[float], Awaitable[Any]]


class RetryingFetcher:
    """
    GET-only JSON client with bounded retries.

    Features:
    - Persistent aiohttp session (lazy, shared by all endpoints of one upstream)
    - Per-attempt timeout independent of the retry budget
    - Exponential backoff with uniform jitter
    - Explicit rate-limit signaling
    """

    def __init__(
        self,
        base_url: str,
        *,
        source: str = "http",
        max_attempts: int = 3,
        base_delay: float = 1.0,
        jitter: float = 1.0,
        timeout_seconds: float = 10.0,
        session: aiohttp.ClientSession | None = None,
        sleep: SleepFn = asyncio.sleep,
    ):
        """
        Initialize the fetcher.

        Args:
            base_url: Upstream root, endpoints are appended to it
            source: Source tag used in logs and metrics
            max_attempts: Total attempts per fetch (>= 1)
            base_delay: Backoff base in seconds
            jitter: Upper bound of the uniform jitter in seconds
            timeout_seconds: Bound for a single attempt
            session: Optional externally owned session
            sleep: Awaitable sleep, injectable for tests
        """
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")

        self._base_url = base_url.rstrip("/")
        self._source = source
        self._max_attempts = max_attempts
        self._base_delay = base_delay
        self._jitter = jitter
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._sleep = sleep

        self._session = session
        self._owns_session = session is None

        self._stats = {
            "total_requests": 0,
            "successful_requests": 0,
            "failed_requests": 0,
            "retried_requests": 0,
            "rate_limited": 0,
        }

    @property
    def source(self) -> str:
        return self._source

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    async def initialize(self) -> None:
        """Initialize the HTTP session."""
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=self._timeout,
                headers={"Accept": "application/json"},
            )
            self._owns_session = True
            logger.debug(f"HTTP session opened for {self._source} ({self._base_url})")

    async def close(self) -> None:
        """Close the HTTP session if this fetcher created it."""
        if self._session and self._owns_session:
            await self._session.close()
            logger.debug(f"HTTP session closed for {self._source}")
        self._session = None

    def backoff_delay(self, attempt: int) -> float:
        """Delay before retrying after the zero-indexed `attempt` failed."""
        return self._base_delay * (2**attempt) + random.uniform(0, self._jitter)

    async def fetch(self, endpoint: str, params: Mapping[str, Any] | None = None) -> Any:
        """
        Fetch an endpoint and return the decoded JSON payload.

        Raises:
            RateLimitedError: upstream answered 429
            PermanentFetchError: other 4xx, or MalformedPayloadError for bad JSON
            TransientFetchError: retry budget exhausted on 5xx/network errors
        """
        url = self._build_url(endpoint)
        query = _clean_params(params)
        last_error: FetchError | None = None

        for attempt in range(self._max_attempts):
            self._stats["total_requests"] += 1
            try:
                status, body = await self._send(url, query)
            except (TimeoutError, aiohttp.ClientError) as e:
                last_error = TransientFetchError(
                    f"{type(e).__name__}: {e}" if str(e) else type(e).__name__,
                    source=self._source,
                    endpoint=endpoint,
                    attempts=attempt + 1,
                )
            else:
                if status == 429:
                    self._stats["rate_limited"] += 1
                    self._stats["failed_requests"] += 1
                    record_fetch_attempt(self._source, "rate_limited")
                    logger.warning(f"{LOG_TAG_FETCH} Rate limited by {self._source} on {endpoint}")
                    raise RateLimitedError(
                        "Rate limit exceeded", source=self._source, endpoint=endpoint, status=status
                    )

                if status >= 500:
                    last_error = TransientFetchError(
                        f"HTTP {status}",
                        source=self._source,
                        endpoint=endpoint,
                        status=status,
                        attempts=attempt + 1,
                    )
                elif status >= 400:
                    self._stats["failed_requests"] += 1
                    record_fetch_attempt(self._source, "permanent")
                    raise PermanentFetchError(
                        f"HTTP {status}", source=self._source, endpoint=endpoint, status=status
                    )
                else:
                    payload = self._decode(body, endpoint)
                    self._stats["successful_requests"] += 1
                    record_fetch_attempt(self._source, "success")
                    return payload

            if attempt < self._max_attempts - 1:
                delay = self.backoff_delay(attempt)
                self._stats["retried_requests"] += 1
                record_fetch_attempt(self._source, "retry")
                logger.warning(
                    f"{LOG_TAG_FETCH} {self._source} {endpoint} failed ({last_error.message}), "
                    f"retrying in {delay:.2f}s ({attempt + 1}/{self._max_attempts})"
                )
                await self._sleep(delay)

        self._stats["failed_requests"] += 1
        record_fetch_attempt(self._source, "exhausted")
        raise TransientFetchError(
            f"Gave up after {self._max_attempts} attempts: {last_error.message}",
            source=self._source,
            endpoint=endpoint,
            status=last_error.status,
            attempts=self._max_attempts,
        ) from last_error

    async def _send(self, url: str, params: dict[str, str]) -> tuple[int, str]:
        """Perform one GET. Returns (status, body text)."""
        await self.initialize()
        async with self._session.get(url, params=params, timeout=self._timeout) as response:
            body = await response.text()
            return response.status, body

    def _decode(self, body: str, endpoint: str) -> Any:
        try:
            return json.loads(body)
        except (TypeError, ValueError) as e:
            self._stats["failed_requests"] += 1
            record_fetch_attempt(self._source, "permanent")
            raise MalformedPayloadError(
                f"Invalid JSON from {self._source}: {e}", source=self._source, endpoint=endpoint
            ) from e

    def _build_url(self, endpoint: str) -> str:
        if endpoint.startswith(("http://", "https://")):
            return endpoint
        return f"{self._base_url}/{endpoint.lstrip('/')}"

    def get_stats(self) -> dict[str, int]:
        """Get request statistics."""
        return dict(self._stats)


def _clean_params(params: Mapping[str, Any] | None) -> dict[str, str]:
    """aiohttp only accepts str/int/float query values; drop Nones."""
    if not params:
        return {}
    cleaned: dict[str, str] = {}
    for key, value in params.items():
        if value is None:
            continue
        if isinstance(value, bool):
            cleaned[key] = "true" if value else "false"
        elif isinstance(value, (list, tuple)):
            cleaned[key] = ",".join(str(v) for v in value)
        else:
            cleaned[key] = str(value)
    return cleaned
