"""Pagination settings for query arguments.

These bound the window sizes accepted from callers so a single request
cannot ask the store for an unbounded page.

Environment variables use PAGINATION_ prefix.
Example: PAGINATION_DEFAULT_PAGE_SIZE=20, PAGINATION_MAX_PAGE_SIZE=100
"""

from __future__ import annotations

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class PaginationSettings(BaseSettings):
    """Pagination configuration settings.

    Attributes:
        default_page_size: Window size used when an offset query has no limit.
        max_page_size: Maximum accepted ``first`` / ``last`` / ``limit`` (hard limit).

    Example:
        settings = PaginationSettings()
        first = min(requested_first, settings.max_page_size)
    """

    default_page_size: int = Field(
        default=20,
        ge=1,
        le=1000,
        description="Default page size when no limit is specified",
    )
    max_page_size: int = Field(
        default=100,
        ge=1,
        le=10000,
        description="Maximum allowed page size (hard limit)",
    )

    model_config = SettingsConfigDict(
        env_prefix="PAGINATION_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
    )

    @model_validator(mode="after")
    def _check_bounds(self) -> PaginationSettings:
        if self.default_page_size > self.max_page_size:
            msg = "default_page_size cannot exceed max_page_size"
            raise ValueError(msg)
        return self
