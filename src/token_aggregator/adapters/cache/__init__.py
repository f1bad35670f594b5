"""Durable cache backends."""

from token_aggregator.adapters.cache.memory import MemoryCache
from token_aggregator.adapters.cache.redis_cache import RedisCache
from token_aggregator.config.settings import CacheSettings
from token_aggregator.ports.cache import CachePort


def build_cache(settings: CacheSettings) -> CachePort:
    """Pick the cache backend named in settings."""
    if settings.backend == "memory":
        return MemoryCache(enabled=settings.enabled, default_ttl=settings.ttl_seconds)
    return RedisCache.from_settings(settings)


__all__ = ["MemoryCache", "RedisCache", "build_cache"]
