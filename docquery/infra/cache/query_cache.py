"""Query result cache with tag-based, deferred invalidation.

Entries are keyed by query kind, document type and the serialized
criteria, and tagged with the document type. Writes never touch the cache
directly: they schedule their document type for invalidation and the
owner of the pending list (the unit of work) flushes it as one batched
tag invalidation once the writes are durable.

Example:
    cache = QueryCache(InMemoryTagAwareCache())

    documents = await cache.get(
        "Event",
        criteria,
        QueryKind.FIND,
        use_cached_value=True,
        query_callback=lambda: store.find(query),
    )

    cache.schedule_for_invalidation("Event")
    await cache.invalidate_cache()
"""

from __future__ import annotations

import hashlib
import json
import logging
from collections.abc import Awaitable, Callable, Iterable, Iterator
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from docquery.infra.cache.backends import (
    MISSING,
    InMemoryTagAwareCache,
    RedisTagAwareCache,
    TagAwareCache,
)
from docquery.infra.logging import get_lazy_logger
from docquery.infra.metrics.prometheus import (
    query_cache_bypass_total,
    query_cache_hits_total,
    query_cache_invalidated_tags_total,
    query_cache_misses_total,
)

if TYPE_CHECKING:
    from docquery.core.query.criteria import QueryCriteria
    from docquery.core.settings.cache import CacheSettings

logger = logging.getLogger(__name__)
lazy_logger = get_lazy_logger(__name__)


class QueryKind(StrEnum):
    """Kind of engine query an entry answers."""

    GET_SINGLE_RESULT = "get_single_result"
    FIND = "find"
    GET_SUBSET = "get_subset"
    COUNT = "count"
    DISTINCT = "distinct"
    SUM = "sum"
    HAS_PREVIOUS_PAGE = "has_previous_page"
    HAS_NEXT_PAGE = "has_next_page"


class PendingInvalidations:
    """Ordered set of document types awaiting invalidation."""

    __slots__ = ("_document_types",)

    def __init__(self) -> None:
        self._document_types: dict[str, None] = {}

    def add(self, document_type: str) -> None:
        self._document_types[document_type] = None

    def drain(self) -> list[str]:
        """Return the scheduled types and empty the list."""
        document_types = list(self._document_types)
        self._document_types.clear()
        return document_types

    def clear(self) -> None:
        self._document_types.clear()

    def __contains__(self, document_type: object) -> bool:
        return document_type in self._document_types

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._document_types))

    def __len__(self) -> int:
        return len(self._document_types)

    def __repr__(self) -> str:
        return f"PendingInvalidations({list(self._document_types)!r})"


def _json_default(value: Any) -> Any:
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)


def _digest(text: str) -> str:
    return hashlib.sha256(text.encode()).hexdigest()


class QueryCache:
    """Tagged cache of raw query results.

    Args:
        backend: Tag-aware key/value store
        key_prefix: Prefix for keys and tags, isolates applications sharing a backend
        ttl: Entry lifetime in seconds, None keeps entries until invalidated
        enabled: When False every lookup runs the query callback
    """

    def __init__(
        self,
        backend: TagAwareCache,
        *,
        key_prefix: str = "docquery",
        ttl: int | None = None,
        enabled: bool = True,
    ) -> None:
        self._backend = backend
        self._key_prefix = key_prefix
        self._ttl = ttl
        self._enabled = enabled
        self._pending = PendingInvalidations()

    @property
    def backend(self) -> TagAwareCache:
        return self._backend

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def pending(self) -> PendingInvalidations:
        return self._pending

    # ──────────────────────────────────────────────────────────────
    # Keys and tags
    # ──────────────────────────────────────────────────────────────

    def build_key(self, document_type: str, criteria: QueryCriteria, query_kind: QueryKind) -> str:
        """Key of the entry answering ``query_kind`` for ``criteria``.

        Structurally equal criteria produce the same key.
        """
        serialized = json.dumps(criteria.to_dict(), sort_keys=True, default=_json_default, separators=(",", ":"))
        return f"{self._key_prefix}:{query_kind.value}|{_digest(f'{document_type}|{serialized}')}"

    def build_tag(self, document_type: str) -> str:
        return f"{self._key_prefix}:{_digest(document_type)[:16]}"

    # ──────────────────────────────────────────────────────────────
    # Lookup
    # ──────────────────────────────────────────────────────────────

    async def get(
        self,
        document_type: str,
        criteria: QueryCriteria,
        query_kind: QueryKind,
        use_cached_value: bool,
        query_callback: Callable[[], Awaitable[Any]],
        post_process: Callable[[Any], Any] | None = None,
    ) -> Any:
        """Return the cached raw result or run the query and cache it.

        Args:
            document_type: Document type the query targets (entry tag)
            criteria: Criteria the result depends on
            query_kind: Kind of query, part of the key
            use_cached_value: Read and fill the cache; False always runs the callback
            query_callback: Coroutine factory producing the raw result
            post_process: Applied to the raw result on every return path,
                never to the cached value

        Returns:
            Raw or post-processed result
        """
        if not use_cached_value or not self._enabled:
            query_cache_bypass_total.labels(document_type=document_type, query_kind=query_kind.value).inc()
            raw = await query_callback()
            return post_process(raw) if post_process else raw

        key = self.build_key(document_type, criteria, query_kind)
        raw = await self._backend.get(key)
        if raw is not MISSING:
            query_cache_hits_total.labels(document_type=document_type, query_kind=query_kind.value).inc()
            lazy_logger.debug(lambda: f"Query cache hit for {document_type} {query_kind.value}: {key}")
        else:
            query_cache_misses_total.labels(document_type=document_type, query_kind=query_kind.value).inc()
            lazy_logger.debug(lambda: f"Query cache miss for {document_type} {query_kind.value}: {key}")
            raw = await query_callback()
            await self._backend.set(key, raw, tags=[self.build_tag(document_type)], ttl=self._ttl)

        return post_process(raw) if post_process else raw

    # ──────────────────────────────────────────────────────────────
    # Invalidation
    # ──────────────────────────────────────────────────────────────

    def schedule_for_invalidation(self, document_type: str) -> None:
        """Queue a document type for the next batched invalidation."""
        self._pending.add(document_type)

    async def invalidate_cache(self, pending: PendingInvalidations | None = None) -> list[str]:
        """Invalidate every scheduled document type in one tag batch.

        Args:
            pending: Pending list to drain, defaults to the cache's own

        Returns:
            Document types that were invalidated
        """
        document_types = (pending if pending is not None else self._pending).drain()
        if not document_types:
            return []
        await self._invalidate(document_types, mode="deferred")
        return document_types

    async def invalidate(self, document_type: str | Iterable[str]) -> None:
        """Invalidate document types immediately."""
        document_types = [document_type] if isinstance(document_type, str) else list(document_type)
        if document_types:
            await self._invalidate(document_types, mode="immediate")

    def discard_pending(self, pending: PendingInvalidations | None = None) -> None:
        (pending if pending is not None else self._pending).clear()

    async def close(self) -> None:
        """Release the backend connections, if it holds any."""
        disconnect = getattr(self._backend, "disconnect", None)
        if disconnect is not None:
            await disconnect()

    async def _invalidate(self, document_types: list[str], *, mode: str) -> None:
        tags = [self.build_tag(document_type) for document_type in document_types]
        deleted = await self._backend.invalidate_tags(tags)
        query_cache_invalidated_tags_total.labels(mode=mode).inc(len(tags))
        logger.info(
            "Query cache invalidated",
            extra={"document_types": document_types, "mode": mode, "deleted": deleted},
        )


async def create_query_cache(settings: CacheSettings) -> QueryCache:
    """Build a QueryCache with the backend named in CacheSettings.

    The Redis backend is connected before returning.
    """
    backend: TagAwareCache
    if settings.backend == "redis":
        redis_backend = RedisTagAwareCache()
        await redis_backend.connect()
        backend = redis_backend
    else:
        backend = InMemoryTagAwareCache()
    return QueryCache(backend, key_prefix=settings.key_prefix, ttl=settings.ttl, enabled=settings.enabled)


__all__ = [
    "PendingInvalidations",
    "QueryCache",
    "QueryKind",
    "create_query_cache",
]
