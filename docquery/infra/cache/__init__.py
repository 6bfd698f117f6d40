"""Query result caching.

Usage:
    from docquery.infra.cache import InMemoryTagAwareCache, QueryCache, QueryKind

    cache = QueryCache(InMemoryTagAwareCache(), key_prefix="app")
"""

from docquery.infra.cache.backends import (
    MISSING,
    InMemoryTagAwareCache,
    RedisTagAwareCache,
    TagAwareCache,
)
from docquery.infra.cache.query_cache import (
    PendingInvalidations,
    QueryCache,
    QueryKind,
    create_query_cache,
)

__all__ = [
    "MISSING",
    "InMemoryTagAwareCache",
    "PendingInvalidations",
    "QueryCache",
    "QueryKind",
    "RedisTagAwareCache",
    "TagAwareCache",
    "create_query_cache",
]
