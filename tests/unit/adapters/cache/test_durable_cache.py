"""
Unit tests for the durable cache backends.

RedisCache is exercised against an AsyncMock client; no Redis server is
needed.
"""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from token_aggregator.adapters.cache import MemoryCache, RedisCache, build_cache
from token_aggregator.config.settings import CacheSettings
from token_aggregator.domain.errors import CacheUnavailableError

# =============================================================================
# MemoryCache
# =============================================================================


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestMemoryCache:
    """TTL dict with JSON round-tripping."""

    @pytest.mark.asyncio
    async def test_set_get_roundtrip(self):
        cache = MemoryCache()

        await cache.set("k", [{"a": 1}], 30)

        assert await cache.get("k") == [{"a": 1}]
        assert await cache.exists("k")

    @pytest.mark.asyncio
    async def test_entry_expires_after_ttl(self):
        clock = FakeClock()
        cache = MemoryCache(clock=clock)
        await cache.set("k", "v", 30)

        clock.now += 29.9
        assert await cache.get("k") == "v"

        clock.now += 0.1
        assert await cache.get("k") is None

    @pytest.mark.asyncio
    async def test_disabled_cache_misses_and_drops_writes(self):
        cache = MemoryCache(enabled=False)

        await cache.set("k", "v", 30)

        assert await cache.get("k") is None
        assert cache.available is False

    @pytest.mark.asyncio
    async def test_delete_pattern(self):
        cache = MemoryCache()
        await cache.set("tokens:a", 1)
        await cache.set("tokens:b", 2)
        await cache.set("other", 3)

        assert await cache.delete_pattern("tokens:*") == 2
        assert await cache.get("other") == 3


# =============================================================================
# RedisCache
# =============================================================================


@pytest.fixture
def redis_client():
    client = MagicMock()
    client.get = AsyncMock(return_value=None)
    client.setex = AsyncMock(return_value=True)
    client.delete = AsyncMock(return_value=1)
    client.exists = AsyncMock(return_value=0)
    client.ping = AsyncMock(return_value=True)
    client.aclose = AsyncMock()
    return client


class TestRedisCache:
    """JSON over SETEX, errors mapped to CacheUnavailableError."""

    @pytest.mark.asyncio
    async def test_set_uses_setex_with_ttl(self, redis_client):
        cache = RedisCache(client=redis_client, default_ttl=30)

        await cache.set("tokens:aggregated", [{"token_address": "A"}], 45)

        redis_client.setex.assert_awaited_once_with(
            "tokens:aggregated", 45, json.dumps([{"token_address": "A"}])
        )

    @pytest.mark.asyncio
    async def test_set_defaults_ttl(self, redis_client):
        cache = RedisCache(client=redis_client, default_ttl=30)

        await cache.set("k", 1)

        assert redis_client.setex.await_args.args[1] == 30

    @pytest.mark.asyncio
    async def test_get_decodes_json(self, redis_client):
        redis_client.get.return_value = '[{"token_address": "A"}]'
        cache = RedisCache(client=redis_client)

        assert await cache.get("k") == [{"token_address": "A"}]

    @pytest.mark.asyncio
    async def test_get_undecodable_is_miss(self, redis_client):
        redis_client.get.return_value = "{not json"
        cache = RedisCache(client=redis_client)

        assert await cache.get("k") is None

    @pytest.mark.asyncio
    async def test_connection_error_raises_cache_unavailable(self, redis_client):
        redis_client.get.side_effect = RedisConnectionError("connection refused")
        cache = RedisCache(client=redis_client)

        with pytest.raises(CacheUnavailableError):
            await cache.get("k")

        assert cache.available is False

    @pytest.mark.asyncio
    async def test_availability_recovers(self, redis_client):
        redis_client.get.side_effect = [RedisConnectionError("down"), '"v"']
        cache = RedisCache(client=redis_client)

        with pytest.raises(CacheUnavailableError):
            await cache.get("k")
        assert await cache.get("k") == "v"
        assert cache.available is True

    @pytest.mark.asyncio
    async def test_connect_failure_is_not_fatal(self, redis_client):
        redis_client.ping.side_effect = RedisConnectionError("down")
        cache = RedisCache(client=redis_client)

        await cache.connect()

        assert cache.available is False

    @pytest.mark.asyncio
    async def test_disabled_never_touches_client(self, redis_client):
        cache = RedisCache(client=redis_client, enabled=False)

        await cache.set("k", 1)
        assert await cache.get("k") is None
        assert await cache.exists("k") is False

        redis_client.setex.assert_not_awaited()
        redis_client.get.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_close(self, redis_client):
        cache = RedisCache(client=redis_client)

        await cache.close()

        redis_client.aclose.assert_awaited_once()


class TestBuildCache:
    def test_memory_backend(self):
        cache = build_cache(CacheSettings(backend="memory", ttl_seconds=10))

        assert isinstance(cache, MemoryCache)

    def test_redis_backend_default(self):
        cache = build_cache(CacheSettings(redis_url="redis://localhost:6379/0"))

        assert isinstance(cache, RedisCache)
        assert cache.enabled is True
