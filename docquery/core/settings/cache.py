"""Query cache settings.

Environment variables use CACHE_ prefix.
Example: CACHE_ENABLED=true, CACHE_BACKEND=redis, CACHE_TTL=600
"""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class CacheSettings(BaseSettings):
    """Query result cache settings.

    Entries live until their document type is invalidated; ``ttl`` adds an
    upper bound on top of tag invalidation.
    """

    enabled: bool = Field(
        default=True,
        description="Serve eligible queries from the result cache",
    )

    backend: Literal["memory", "redis"] = Field(
        default="memory",
        description="Tag-aware cache backend",
    )

    key_prefix: str = Field(
        default="docquery",
        min_length=1,
        max_length=64,
        description="Prefix for every cache key",
    )

    ttl: int | None = Field(
        default=None,
        ge=1,
        description="Entry TTL in seconds (None keeps entries until invalidated)",
    )

    model_config = SettingsConfigDict(
        env_prefix="CACHE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
    )
