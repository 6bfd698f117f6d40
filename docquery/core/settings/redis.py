"""Redis cache backend connection settings."""

from __future__ import annotations

from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class RedisSettings(BaseSettings):
    """Redis connection settings for the tag-aware cache backend.

    Environment variables use REDIS_ prefix.
    Example: REDIS_URL="redis://localhost:6379/0"
    """

    # ──────────────────────────────────────────────────────────────
    # Connection
    # ──────────────────────────────────────────────────────────────

    url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL (redis://[username:password@]host:port/db)",
    )

    max_connections: int = Field(
        default=50,
        ge=1,
        le=1000,
        description="Maximum Redis connection pool size",
    )

    socket_timeout: float = Field(
        default=5.0,
        ge=0.1,
        le=30.0,
        description="Redis socket timeout in seconds (for operations)",
    )

    # ──────────────────────────────────────────────────────────────
    # Retry
    # ──────────────────────────────────────────────────────────────

    max_retries: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts for transient connection errors",
    )

    retry_delay: float = Field(
        default=0.1,
        ge=0.0,
        le=10.0,
        description="Initial backoff delay in seconds",
    )

    model_config = SettingsConfigDict(
        env_prefix="REDIS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
    )

    def connection_pool_kwargs(self) -> dict[str, Any]:
        """Return kwargs for redis.asyncio.ConnectionPool.from_url().

        Returns:
            Dictionary suitable for unpacking into ConnectionPool.from_url(**kwargs).
        """
        return {
            "max_connections": self.max_connections,
            "socket_timeout": self.socket_timeout,
            "decode_responses": True,
            "encoding": "utf-8",
        }
