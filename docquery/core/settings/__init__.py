"""Modular Pydantic Settings v2 configuration.

One frozen settings model per concern, each bound to its own environment
prefix (STORE_, CACHE_, REDIS_, PAGINATION_, LOG_) and read through an
LRU-cached loader:

    from docquery.core.settings import get_store_settings

    settings = get_store_settings()
    print(settings.backend)
"""

from __future__ import annotations

from .cache import CacheSettings
from .loader import (
    clear_all_caches,
    get_cache_settings,
    get_logging_settings,
    get_pagination_settings,
    get_redis_settings,
    get_store_settings,
)
from .logs import LoggingSettings
from .pagination import PaginationSettings
from .redis import RedisSettings
from .store import StoreSettings

__all__ = [
    "CacheSettings",
    "LoggingSettings",
    "PaginationSettings",
    "RedisSettings",
    "StoreSettings",
    "clear_all_caches",
    "get_cache_settings",
    "get_logging_settings",
    "get_pagination_settings",
    "get_redis_settings",
    "get_store_settings",
]
