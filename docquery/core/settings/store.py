"""Document store connection settings.

Environment variables use STORE_ prefix.
Example: STORE_BACKEND=mongo, STORE_MONGO_URL="mongodb://localhost:27017"
"""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class StoreSettings(BaseSettings):
    """Document store settings.

    The ``memory`` backend keeps documents in process and is meant for
    tests and local development.
    """

    backend: Literal["memory", "mongo"] = Field(
        default="memory",
        description="Document store implementation",
    )

    mongo_url: str = Field(
        default="mongodb://localhost:27017",
        description="MongoDB connection URL",
    )

    database: str = Field(
        default="docquery",
        min_length=1,
        description="Database name",
    )

    allow_disk_use: bool = Field(
        default=True,
        description="Let the server spill large sorts to disk",
    )

    use_transactions: bool = Field(
        default=False,
        description="Apply unit-of-work commits inside a transaction (requires a replica set)",
    )

    server_selection_timeout_ms: int = Field(
        default=5000,
        ge=100,
        le=120_000,
        description="Server selection timeout in milliseconds",
    )

    model_config = SettingsConfigDict(
        env_prefix="STORE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
    )
