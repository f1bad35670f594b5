"""
Domain Error Taxonomy.

Fetch errors are raised by the HTTP layer and absorbed by the source
adapters; cache errors are absorbed by the cache layer. None of these
escape the public service operations.
"""

from __future__ import annotations

from typing import Any


class AggregatorError(Exception):
    """
    Base class for all aggregator errors.

    Includes structured error info for logging and debugging.
    """

    error_code: str = "AGGREGATOR_ERROR"

    def __init__(
        self,
        message: str,
        *,
        source: str | None = None,
        endpoint: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.source = source
        self.endpoint = endpoint
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict for logging."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "source": self.source,
            "endpoint": self.endpoint,
            "details": self.details,
        }


# =============================================================================
# Fetch Errors
# =============================================================================


class FetchError(AggregatorError):
    """Upstream request failed."""

    error_code = "FETCH_ERROR"

    def __init__(self, message: str, *, status: int | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.status = status
        if status is not None:
            self.details["status"] = status


class RateLimitedError(FetchError):
    """Upstream answered 429. Never retried by the fetch layer."""

    error_code = "RATE_LIMITED"


class TransientFetchError(FetchError):
    """Timeout, connection failure or 5xx after the retry budget was spent."""

    error_code = "TRANSIENT"

    def __init__(self, message: str, *, attempts: int = 0, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.attempts = attempts
        self.details["attempts"] = attempts


class PermanentFetchError(FetchError):
    """4xx other than 429. Not retried."""

    error_code = "PERMANENT"


class MalformedPayloadError(PermanentFetchError):
    """Response body is not valid JSON or does not match the source schema."""

    error_code = "MALFORMED_PAYLOAD"


# =============================================================================
# Cache Errors
# =============================================================================


class CacheUnavailableError(AggregatorError):
    """Durable cache unreachable. Callers degrade to recomputing."""

    error_code = "CACHE_UNAVAILABLE"
