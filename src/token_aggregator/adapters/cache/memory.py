"""
In-process TTL cache.

Used when `cache.backend` is "memory" (single instance deployments, the
snapshot command) and as the durable cache stand-in for tests. Values are
JSON round-tripped so callers get the same shapes Redis would return.
"""

from __future__ import annotations

import fnmatch
import json
import time
from collections.abc import Callable
from typing import Any

from token_aggregator.ports.cache import CachePort


class MemoryCache(CachePort):
    """Dict-backed CachePort with monotonic-clock expiry."""

    def __init__(
        self,
        *,
        enabled: bool = True,
        default_ttl: int = 30,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._enabled = enabled
        self._default_ttl = default_ttl
        self._clock = clock
        self._entries: dict[str, tuple[float, str]] = {}

    @property
    def available(self) -> bool:
        return self._enabled

    async def connect(self) -> None:
        return None

    async def close(self) -> None:
        self._entries.clear()

    async def get(self, key: str) -> Any | None:
        if not self._enabled:
            return None
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, raw = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return json.loads(raw)

    async def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        if not self._enabled:
            return
        expiry = ttl_seconds or self._default_ttl
        self._entries[key] = (self._clock() + expiry, json.dumps(value))

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    async def delete_pattern(self, pattern: str) -> int:
        matched = [key for key in self._entries if fnmatch.fnmatchcase(key, pattern)]
        for key in matched:
            del self._entries[key]
        return len(matched)

    async def exists(self, key: str) -> bool:
        return await self.get(key) is not None
