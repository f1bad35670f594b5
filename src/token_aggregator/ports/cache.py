"""
Cache Port: Abstract interface for the durable key-value cache.

Implementations raise CacheUnavailableError when the backend cannot be
reached; the cache layer decides how to degrade.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class CachePort(ABC):
    """Durable JSON key-value cache with per-key TTL."""

    @property
    @abstractmethod
    def available(self) -> bool:
        """Whether the last operation reached the backend."""
        ...

    @abstractmethod
    async def connect(self) -> None:
        """Open the connection (no-op when disabled)."""
        ...

    @abstractmethod
    async def close(self) -> None:
        ...

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """Return the decoded value, or None on a miss."""
        ...

    @abstractmethod
    async def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        """Store a JSON-serializable value with a TTL."""
        ...

    @abstractmethod
    async def delete(self, key: str) -> None:
        ...

    @abstractmethod
    async def delete_pattern(self, pattern: str) -> int:
        """Delete all keys matching a glob pattern. Returns the count."""
        ...

    @abstractmethod
    async def exists(self, key: str) -> bool:
        ...
