"""
Unit tests for Settings loading: YAML defaults plus deployment env vars.
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from token_aggregator.config.settings import Settings, _deep_merge

DEPLOYMENT_VARS = (
    "CACHE_TTL",
    "CACHE_ENABLED",
    "CACHE_BACKEND",
    "REDIS_URL",
    "REDIS_HOST",
    "REDIS_PORT",
    "REDIS_PASSWORD",
    "RETRY_MAX_ATTEMPTS",
    "RETRY_BASE_DELAY",
    "WS_UPDATE_INTERVAL",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in DEPLOYMENT_VARS:
        monkeypatch.delenv(name, raising=False)


class TestDefaults:
    """config.yaml mirrors the documented defaults."""

    def test_yaml_defaults(self):
        settings = Settings.from_yaml("test")

        assert settings.env == "test"
        assert settings.cache.ttl_seconds == 30
        assert settings.cache.enabled is True
        assert settings.cache.key == "tokens:aggregated"
        assert settings.retry.max_attempts == 3
        assert settings.retry.base_delay_ms == 1000
        assert settings.feed.update_interval_ms == 5000
        assert settings.feed.snapshot_size == 30
        assert settings.feed.price_change_threshold_pct == Decimal("1")
        assert settings.feed.volume_spike_threshold_pct == Decimal("50")
        assert settings.refresh.interval_seconds == 30
        assert settings.sources.chain == "solana"

    def test_derived_seconds(self):
        settings = Settings.from_yaml("test")

        assert settings.feed_interval_seconds == 5.0
        assert settings.retry_base_delay_seconds == 1.0

    def test_missing_yaml_uses_model_defaults(self, tmp_path):
        settings = Settings.from_yaml("test", yaml_file=tmp_path / "absent.yaml")

        assert settings.cache.ttl_seconds == 30


class TestDeploymentOverrides:
    """Plain environment variables win over config.yaml."""

    def test_cache_and_retry_overrides(self, monkeypatch):
        monkeypatch.setenv("CACHE_TTL", "90")
        monkeypatch.setenv("RETRY_MAX_ATTEMPTS", "5")
        monkeypatch.setenv("RETRY_BASE_DELAY", "250")
        monkeypatch.setenv("WS_UPDATE_INTERVAL", "2000")

        settings = Settings.from_yaml("test")

        assert settings.cache.ttl_seconds == 90
        assert settings.retry.max_attempts == 5
        assert settings.retry_base_delay_seconds == 0.25
        assert settings.feed_interval_seconds == 2.0

    @pytest.mark.parametrize(("raw", "enabled"), [("false", False), ("0", False), ("true", True), ("yes", True)])
    def test_cache_enabled_flag(self, monkeypatch, raw, enabled):
        monkeypatch.setenv("CACHE_ENABLED", raw)

        assert Settings.from_yaml("test").cache.enabled is enabled

    def test_redis_connection_vars(self, monkeypatch):
        monkeypatch.setenv("REDIS_URL", "rediss://:secret@cache.internal:6380/0")
        monkeypatch.setenv("REDIS_HOST", "cache.internal")
        monkeypatch.setenv("REDIS_PORT", "6380")
        monkeypatch.setenv("REDIS_PASSWORD", "secret")

        cache = Settings.from_yaml("test").cache

        assert cache.redis_url == "rediss://:secret@cache.internal:6380/0"
        assert cache.redis_host == "cache.internal"
        assert cache.redis_port == 6380
        assert cache.redis_password == "secret"

    def test_yaml_file_values_used(self, tmp_path):
        config = tmp_path / "config.yaml"
        config.write_text("cache:\n  ttl_seconds: 12\nfeed:\n  snapshot_size: 5\n", encoding="utf-8")

        settings = Settings.from_yaml("test", yaml_file=config)

        assert settings.cache.ttl_seconds == 12
        assert settings.feed.snapshot_size == 5
        assert settings.retry.max_attempts == 3


class TestDeepMerge:
    def test_nested_override(self):
        assert _deep_merge({"a": {"x": 1, "y": 2}, "b": 1}, {"a": {"y": 3}}) == {"a": {"x": 1, "y": 3}, "b": 1}
