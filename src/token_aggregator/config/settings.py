"""
Settings management using Pydantic.

Loads configuration from config.yaml and environment variables.
Environment variables override YAML values.
"""

from __future__ import annotations

import logging
import os
from decimal import Decimal
from functools import lru_cache
from pathlib import Path

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

_FALSE_VALUES = ("false", "0", "no", "off")


class SourceSettings(BaseModel):
    """Upstream provider endpoints and scope."""

    dexscreener_base_url: str = "https://api.dexscreener.com"
    geckoterminal_base_url: str = "https://api.geckoterminal.com/api/v2"
    jupiter_base_url: str = "https://price.jup.ag"

    chain: str = "solana"
    search_query: str = "SOL"
    geckoterminal_page: int = Field(default=1, ge=1)

    # Wrapped SOL mint, used as the vsToken for oracle prices
    reference_mint: str = "So11111111111111111111111111111111111111112"
    # Identities always priced by the oracle, in addition to the last aggregate
    watchlist: list[str] = Field(default_factory=list)
    jupiter_batch_size: int = Field(default=100, ge=1)


class RetrySettings(BaseModel):
    """Fetch layer retry budget."""

    max_attempts: int = Field(default=3, ge=1)
    base_delay_ms: int = Field(default=1000, ge=0)
    jitter_ms: int = Field(default=1000, ge=0)
    timeout_seconds: float = Field(default=10.0, gt=0)


class CacheSettings(BaseModel):
    """Durable cache settings."""

    enabled: bool = True
    backend: str = "redis"  # "redis" or "memory"
    ttl_seconds: int = Field(default=30, ge=1)
    key: str = "tokens:aggregated"

    # REDIS_URL wins over host/port/password when set (rediss:// enables TLS)
    redis_url: str = ""
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: str = ""
    socket_timeout_seconds: float = 2.0


class RefreshSettings(BaseModel):
    """Aggregate refresh loop settings."""

    interval_seconds: float = Field(default=30.0, gt=0)


class FeedSettings(BaseModel):
    """Live change feed settings."""

    update_interval_ms: int = Field(default=5000, ge=100)
    snapshot_size: int = Field(default=30, ge=1)
    price_change_threshold_pct: Decimal = Decimal("1")
    volume_spike_threshold_pct: Decimal = Decimal("50")


class LoggingSettings(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    file_enabled: bool = True
    json_enabled: bool = False
    json_file: str = "logs/token_aggregator.jsonl"
    json_max_bytes: int = 10_000_000
    json_backup_count: int = 5


class MetricsSettings(BaseModel):
    """Prometheus exporter settings."""

    enabled: bool = False
    port: int = 9108


class Settings(BaseSettings):
    """
    Main settings container.

    Loads from config.yaml, then applies env var overrides.
    """

    env: str = Field(default="development", alias="AGGREGATOR_ENV")

    sources: SourceSettings = Field(default_factory=SourceSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    refresh: RefreshSettings = Field(default_factory=RefreshSettings)
    feed: FeedSettings = Field(default_factory=FeedSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    metrics: MetricsSettings = Field(default_factory=MetricsSettings)

    model_config = {
        "env_prefix": "AGGREGATOR_",
        "env_nested_delimiter": "__",
        "extra": "ignore",
        "populate_by_name": True,
    }

    @property
    def feed_interval_seconds(self) -> float:
        return self.feed.update_interval_ms / 1000

    @property
    def retry_base_delay_seconds(self) -> float:
        return self.retry.base_delay_ms / 1000

    @classmethod
    def from_yaml(cls, env: str = "development", yaml_file: Path | None = None) -> Settings:
        """
        Load settings from config.yaml.

        The plain deployment variables (CACHE_TTL, REDIS_URL, ...) are applied
        on top of the YAML values.
        """
        if yaml_file is None:
            yaml_file = Path(__file__).parent / "config.yaml"

        data: dict = {}
        if yaml_file.exists():
            with open(yaml_file, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}

        data = _deep_merge(data, _env_overrides())
        data["env"] = env

        # Warn about unknown keys before creating model (helps catch typos in config.yaml)
        _warn_unknown_keys(data, cls)

        return cls(**data)


def _env_overrides() -> dict:
    """Collect overrides from the deployment environment variables."""
    cache: dict = {}
    retry: dict = {}
    feed: dict = {}

    if os.getenv("CACHE_TTL"):
        cache["ttl_seconds"] = int(os.getenv("CACHE_TTL"))
    if os.getenv("CACHE_ENABLED"):
        cache["enabled"] = os.getenv("CACHE_ENABLED").strip().lower() not in _FALSE_VALUES
    if os.getenv("CACHE_BACKEND"):
        cache["backend"] = os.getenv("CACHE_BACKEND").strip().lower()
    if os.getenv("REDIS_URL", "").strip():
        cache["redis_url"] = os.getenv("REDIS_URL").strip()
    if os.getenv("REDIS_HOST"):
        cache["redis_host"] = os.getenv("REDIS_HOST")
    if os.getenv("REDIS_PORT"):
        cache["redis_port"] = int(os.getenv("REDIS_PORT"))
    if os.getenv("REDIS_PASSWORD"):
        cache["redis_password"] = os.getenv("REDIS_PASSWORD")

    if os.getenv("RETRY_MAX_ATTEMPTS"):
        retry["max_attempts"] = int(os.getenv("RETRY_MAX_ATTEMPTS"))
    if os.getenv("RETRY_BASE_DELAY"):
        retry["base_delay_ms"] = int(os.getenv("RETRY_BASE_DELAY"))

    if os.getenv("WS_UPDATE_INTERVAL"):
        feed["update_interval_ms"] = int(os.getenv("WS_UPDATE_INTERVAL"))

    overrides: dict = {}
    for section, values in (("cache", cache), ("retry", retry), ("feed", feed)):
        if values:
            overrides[section] = values
    return overrides


def _deep_merge(base: dict, override: dict) -> dict:
    """Deep merge two dicts, override wins on conflicts."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _collect_all_keys(data: dict, prefix: str = "") -> set[str]:
    """Recursively collect all keys from a nested dict in dot notation."""
    keys = set()
    for key, value in data.items():
        full_key = f"{prefix}.{key}" if prefix else key
        keys.add(full_key)
        if isinstance(value, dict):
            keys.update(_collect_all_keys(value, full_key))
    return keys


def _collect_model_fields(model_class: type[BaseModel], prefix: str = "") -> set[str]:
    """Recursively collect all field names from a Pydantic model in dot notation."""
    fields = set()
    for field_name, field_info in model_class.model_fields.items():
        full_key = f"{prefix}.{field_name}" if prefix else field_name
        fields.add(full_key)

        annotation = field_info.annotation
        if isinstance(annotation, type) and issubclass(annotation, BaseModel):
            fields.update(_collect_model_fields(annotation, full_key))

    return fields


def _warn_unknown_keys(data: dict, model_class: type[BaseModel]) -> None:
    """Warn about keys in config.yaml that don't match model fields."""
    unknown_keys = _collect_all_keys(data) - _collect_model_fields(model_class)

    if unknown_keys:
        logger.warning(
            f"Unknown configuration keys found (will be ignored due to extra='ignore'): {sorted(unknown_keys)}. "
            f"This may indicate typos in config.yaml or outdated config keys."
        )


@lru_cache(maxsize=4)
def get_settings(env: str | None = None) -> Settings:
    """Get cached settings instance."""
    resolved_env = env or os.getenv("AGGREGATOR_ENV", "development")
    return Settings.from_yaml(env=resolved_env)
