"""
Shared configuration management for the memo-cache library.
"""

from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="MEMO_CACHE_",
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Observability
    enable_metrics: bool = Field(default=True)


class CacheConfig(BaseConfig):
    """Settings for one memoizing cache accessor."""

    name: str = Field(default="default")

    # Store eviction: "none" keeps every entry for the accessor's lifetime
    eviction_policy: Literal["none", "ttl", "lru"] = Field(default="none")
    max_entries: Optional[int] = Field(default=None)
    ttl_seconds: Optional[float] = Field(default=None)

    # Bulk warm-up
    warm_concurrency: int = Field(default=5)

    # HTTP producer
    producer_base_url: Optional[str] = Field(default=None)
    producer_timeout: float = Field(default=10.0)


def get_config(**overrides) -> CacheConfig:
    """Get cache configuration from the environment, with explicit overrides."""
    return CacheConfig(**overrides)
