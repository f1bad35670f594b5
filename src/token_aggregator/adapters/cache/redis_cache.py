"""
Redis-backed durable cache.

Supports REDIS_URL (redis:// or rediss:// for TLS) or separate
host/port/password. Values are stored as JSON with SETEX. Backend errors
surface as CacheUnavailableError; a disabled cache misses on every read
and drops every write.
"""

from __future__ import annotations

import json
from typing import Any

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from token_aggregator.config.settings import CacheSettings
from token_aggregator.domain.errors import CacheUnavailableError
from token_aggregator.observability.logging import LOG_TAG_CACHE, get_logger
from token_aggregator.ports.cache import CachePort

logger = get_logger(__name__)


class RedisCache(CachePort):
    """CachePort on redis-py's asyncio client."""

    def __init__(
        self,
        *,
        url: str = "",
        host: str = "localhost",
        port: int = 6379,
        password: str = "",
        enabled: bool = True,
        default_ttl: int = 30,
        socket_timeout: float = 2.0,
        client: aioredis.Redis | None = None,
    ):
        self._url = url.strip()
        self._host = host
        self._port = port
        self._password = password
        self._enabled = enabled
        self._default_ttl = default_ttl
        self._socket_timeout = socket_timeout
        self._client = client
        self._available = enabled

    @classmethod
    def from_settings(cls, settings: CacheSettings) -> RedisCache:
        return cls(
            url=settings.redis_url,
            host=settings.redis_host,
            port=settings.redis_port,
            password=settings.redis_password,
            enabled=settings.enabled,
            default_ttl=settings.ttl_seconds,
            socket_timeout=settings.socket_timeout_seconds,
        )

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def available(self) -> bool:
        return self._enabled and self._available

    def _build_client(self) -> aioredis.Redis:
        if self._url:
            # rediss:// switches redis-py to TLS on its own
            return aioredis.from_url(
                self._url,
                decode_responses=True,
                socket_timeout=self._socket_timeout,
                socket_connect_timeout=self._socket_timeout,
            )
        return aioredis.Redis(
            host=self._host,
            port=self._port,
            password=self._password or None,
            decode_responses=True,
            socket_timeout=self._socket_timeout,
            socket_connect_timeout=self._socket_timeout,
        )

    async def connect(self) -> None:
        if not self._enabled:
            logger.warning(f"{LOG_TAG_CACHE} Cache is disabled (CACHE_ENABLED=false)")
            return

        target = self._url or f"{self._host}:{self._port}"
        logger.info(f"{LOG_TAG_CACHE} Connecting to Redis at {target}")
        try:
            await self._call("ping")
            logger.info(f"{LOG_TAG_CACHE} Redis connected")
        except CacheUnavailableError as e:
            # Not fatal: the cache layer recomputes while Redis is down
            logger.error(f"{LOG_TAG_CACHE} Failed to connect to Redis: {e.message}")

    async def close(self) -> None:
        if self._client is not None:
            try:
                await self._client.aclose()
            except RedisError as e:
                logger.debug(f"{LOG_TAG_CACHE} Error closing Redis client: {e}")
            self._client = None
            logger.info(f"{LOG_TAG_CACHE} Redis disconnected")

    async def get(self, key: str) -> Any | None:
        if not self._enabled:
            return None
        raw = await self._call("get", key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning(f"{LOG_TAG_CACHE} Discarding undecodable cache entry {key}")
            return None

    async def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        if not self._enabled:
            return
        expiry = ttl_seconds or self._default_ttl
        await self._call("setex", key, expiry, json.dumps(value))
        logger.debug(f"{LOG_TAG_CACHE} Cache set {key} (ttl={expiry}s)")

    async def delete(self, key: str) -> None:
        if not self._enabled:
            return
        await self._call("delete", key)
        logger.debug(f"{LOG_TAG_CACHE} Cache deleted {key}")

    async def delete_pattern(self, pattern: str) -> int:
        if not self._enabled:
            return 0
        client = self._get_client()
        try:
            keys = [key async for key in client.scan_iter(match=pattern)]
            if keys:
                await client.delete(*keys)
        except RedisError as e:
            self._available = False
            raise CacheUnavailableError(f"Redis delete_pattern failed: {e}") from e
        self._available = True
        logger.debug(f"{LOG_TAG_CACHE} Cache pattern {pattern} deleted {len(keys)} keys")
        return len(keys)

    async def exists(self, key: str) -> bool:
        if not self._enabled:
            return False
        return bool(await self._call("exists", key))

    def _get_client(self) -> aioredis.Redis:
        if self._client is None:
            self._client = self._build_client()
        return self._client

    async def _call(self, op: str, *args: Any) -> Any:
        client = self._get_client()
        try:
            result = await getattr(client, op)(*args)
        except (RedisError, OSError) as e:
            if self._available:
                logger.warning(f"{LOG_TAG_CACHE} Redis unavailable: {e}")
            self._available = False
            raise CacheUnavailableError(f"Redis {op} failed: {e}", details={"op": op}) from e

        if not self._available:
            logger.info(f"{LOG_TAG_CACHE} Redis reachable again")
        self._available = True
        return result
