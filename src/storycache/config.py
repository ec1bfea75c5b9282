"""
Configuration using Pydantic Settings.

All values are read from the environment (prefix ``STORYCACHE_``) or a
``.env`` file. Durations accept the same strings as
:func:`storycache.duration.parse_duration` ("30s", "5m", ...) or plain
milliseconds, and are validated at load time.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from storycache.duration import Duration, parse_duration


class CacheSettings(BaseSettings):
    """Settings for the server cache, client cache and deduplicator."""

    # External store
    REDIS_URL: str | None = Field(default=None, description="Redis URL; memory store when unset")
    REDIS_PREFIX: str = Field(default="storycache", description="Key prefix inside Redis")
    REDIS_CONNECT_TIMEOUT_S: float = Field(default=5.0, description="Connect timeout in seconds")

    # Server TTL policy
    DEFAULT_TTL: Duration = Field(default="10m")
    STATS_TTL: Duration = Field(default="5m")
    USERS_TTL: Duration = Field(default="10m")
    STORIES_TTL: Duration = Field(default="15m")

    # Stale-on-error fallback
    SERVE_STALE_ON_ERROR: bool = Field(default=True)
    STALE_WINDOW: Duration = Field(default="1h", description="How long expired entries are kept for fallback")

    MEMORY_MAX_ITEMS: int | None = Field(default=10_000, description="LRU bound for the memory store")

    # Client side
    CLIENT_CACHE_DURATION: Duration = Field(default="5m")
    INVALIDATION_POLL_INTERVAL: Duration = Field(default="2m")
    INVALIDATION_ENDPOINT: str = Field(default="/api/admin/clear-landing-cache")
    DEDUP_TTL: Duration = Field(default="30s")
    DEDUP_SWEEP_INTERVAL: Duration = Field(default="5m")

    # Logging
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(default="INFO")
    LOG_FORMAT: Literal["json", "console"] = Field(default="console")

    model_config = SettingsConfigDict(
        env_prefix="STORYCACHE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    @field_validator(
        "DEFAULT_TTL",
        "STATS_TTL",
        "USERS_TTL",
        "STORIES_TTL",
        "STALE_WINDOW",
        "CLIENT_CACHE_DURATION",
        "INVALIDATION_POLL_INTERVAL",
        "DEDUP_TTL",
        "DEDUP_SWEEP_INTERVAL",
    )
    @classmethod
    def validate_duration(cls, v: Duration) -> Duration:
        """Reject malformed durations at startup."""
        if isinstance(v, str) and v.isdigit():
            v = int(v)
        parse_duration(v)
        return v

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def upper_log_level(cls, v: str) -> str:
        return v.upper() if isinstance(v, str) else v

    def ms(self, name: str) -> int:
        """Return a duration setting in milliseconds."""
        return parse_duration(getattr(self, name))


@lru_cache
def get_settings() -> CacheSettings:
    """Load settings once per process."""
    return CacheSettings()
