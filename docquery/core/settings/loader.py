"""LRU-cached settings loaders.

Settings are loaded and validated once, then cached for the lifetime of the process.

Usage:
    from docquery.core.settings.loader import get_cache_settings

    settings = get_cache_settings()  # First call: loads and validates
    settings = get_cache_settings()  # Subsequent calls: returns cached instance

Testing:
    In tests, clear the cache to force reload:
    get_cache_settings.cache_clear()
"""

from __future__ import annotations

from functools import lru_cache

from .cache import CacheSettings
from .logs import LoggingSettings
from .pagination import PaginationSettings
from .redis import RedisSettings
from .store import StoreSettings


@lru_cache(maxsize=1)
def get_store_settings() -> StoreSettings:
    """Get cached document store settings.

    Returns:
        Validated and frozen StoreSettings instance.
    """
    return StoreSettings()


@lru_cache(maxsize=1)
def get_cache_settings() -> CacheSettings:
    """Get cached query cache settings.

    Returns:
        Validated and frozen CacheSettings instance.
    """
    return CacheSettings()


@lru_cache(maxsize=1)
def get_redis_settings() -> RedisSettings:
    """Get cached Redis settings.

    Returns:
        Validated and frozen RedisSettings instance.
    """
    return RedisSettings()


@lru_cache(maxsize=1)
def get_pagination_settings() -> PaginationSettings:
    """Get cached pagination settings.

    Returns:
        Validated and frozen PaginationSettings instance.
    """
    return PaginationSettings()


@lru_cache(maxsize=1)
def get_logging_settings() -> LoggingSettings:
    """Get cached logging settings.

    Returns:
        Validated and frozen LoggingSettings instance.
    """
    return LoggingSettings()


def clear_all_caches() -> None:
    """Clear all settings caches.

    Useful for testing or when you need to force reload settings.
    """
    get_store_settings.cache_clear()
    get_cache_settings.cache_clear()
    get_redis_settings.cache_clear()
    get_pagination_settings.cache_clear()
    get_logging_settings.cache_clear()
