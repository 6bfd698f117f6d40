"""Tag-aware key/value backends for the query cache.

Every entry is stored together with a set of tags; invalidating a tag
removes every entry carrying it. Two implementations:

- InMemoryTagAwareCache: process-local dict with a tag index
- RedisTagAwareCache: Redis strings for values plus one ``tag:{tag}`` set
  per tag listing the keys that carry it
"""

from __future__ import annotations

import asyncio
import copy
import json
import logging
import time
from collections.abc import Iterable
from datetime import datetime
from typing import TYPE_CHECKING, Any, Final, Protocol, cast

from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from docquery.core.settings import get_redis_settings
from docquery.utils.retry import retry

if TYPE_CHECKING:
    from collections.abc import Awaitable

logger = logging.getLogger(__name__)
redis_settings = get_redis_settings()

DATETIME_MARKER = "$datetime"


class _Missing:
    """Marker for absent cache entries (cached values may be None)."""

    __slots__ = ()

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Final = _Missing()


class TagAwareCache(Protocol):
    """Key/value store whose entries can be invalidated by tag."""

    async def get(self, key: str) -> Any:
        """Return the cached value or ``MISSING``."""
        ...

    async def set(self, key: str, value: Any, tags: Iterable[str], ttl: int | None = None) -> None:
        """Store a value and attach it to ``tags``."""
        ...

    async def invalidate_tags(self, tags: Iterable[str]) -> int:
        """Drop every entry carrying one of ``tags``; return the number dropped."""
        ...


# ──────────────────────────────────────────────────────────────
# JSON encoding
# ──────────────────────────────────────────────────────────────


def _encode_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return {DATETIME_MARKER: value.isoformat()}
    msg = f"Object of type {type(value).__name__} is not JSON serializable"
    raise TypeError(msg)


def _decode_hook(value: dict[str, Any]) -> Any:
    if len(value) == 1 and DATETIME_MARKER in value:
        return datetime.fromisoformat(value[DATETIME_MARKER])
    return value


def dumps(value: Any) -> str:
    """Serialize a raw store result, tagging datetimes."""
    return json.dumps(value, default=_encode_default)


def loads(payload: str | bytes) -> Any:
    return json.loads(payload, object_hook=_decode_hook)


# ──────────────────────────────────────────────────────────────
# In-memory backend
# ──────────────────────────────────────────────────────────────


class InMemoryTagAwareCache:
    """Process-local tag-aware cache.

    Values are deep-copied on the way in and out so callers can never
    mutate a cached entry.

    Example:
        cache = InMemoryTagAwareCache()
        await cache.set("events:1", [{"id": "1"}], tags=["events"])
        await cache.invalidate_tags(["events"])
    """

    def __init__(self) -> None:
        self._entries: dict[str, tuple[Any, float | None]] = {}
        self._tags: dict[str, set[str]] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Any:
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return MISSING
            value, expires_at = entry
            if expires_at is not None and expires_at <= time.monotonic():
                del self._entries[key]
                return MISSING
            return copy.deepcopy(value)

    async def set(self, key: str, value: Any, tags: Iterable[str], ttl: int | None = None) -> None:
        expires_at = time.monotonic() + ttl if ttl else None
        async with self._lock:
            self._entries[key] = (copy.deepcopy(value), expires_at)
            for tag in tags:
                self._tags.setdefault(tag, set()).add(key)

    async def invalidate_tags(self, tags: Iterable[str]) -> int:
        deleted = 0
        async with self._lock:
            for tag in tags:
                for key in self._tags.pop(tag, set()):
                    if self._entries.pop(key, None) is not None:
                        deleted += 1
        return deleted

    async def clear(self) -> None:
        async with self._lock:
            self._entries.clear()
            self._tags.clear()

    def __len__(self) -> int:
        return len(self._entries)


# ──────────────────────────────────────────────────────────────
# Redis backend
# ──────────────────────────────────────────────────────────────


class RedisTagAwareCache:
    """Redis tag-aware cache with retry on transient connection errors.

    Values are JSON strings; each tag is a Redis set named ``tag:{tag}``
    holding the keys it covers.

    Example:
        cache = RedisTagAwareCache()
        await cache.connect()

        await cache.set("docquery:find|ab12", [{"id": "1"}], tags=["docquery:events"])
        await cache.invalidate_tags(["docquery:events"])

        await cache.disconnect()
    """

    def __init__(self, client: Redis | None = None) -> None:
        """Initialize the backend.

        Args:
            client: Already connected client; when omitted :meth:`connect`
                builds one from RedisSettings.
        """
        self._pool: ConnectionPool | None = None
        self._client: Redis | None = client

    async def connect(self) -> None:
        """Open a pooled connection using RedisSettings.

        Raises:
            RedisConnectionError: If Redis cannot be reached.
        """
        logger.info(
            "Connecting to Redis",
            extra={
                "max_connections": redis_settings.max_connections,
                "socket_timeout": redis_settings.socket_timeout,
            },
        )
        try:
            self._pool = ConnectionPool.from_url(redis_settings.url, **redis_settings.connection_pool_kwargs())
            self._client = Redis(connection_pool=self._pool)
            await cast("Awaitable[bool]", self._client.ping())
            logger.info("Redis connection established successfully")
        except Exception as e:
            logger.exception("Failed to connect to Redis", extra={"error": str(e)})
            raise

    async def disconnect(self) -> None:
        logger.info("Disconnecting from Redis")
        if self._client:
            await cast("Any", self._client).aclose()
            self._client = None
        if self._pool:
            await cast("Any", self._pool).aclose()
            self._pool = None
        logger.info("Redis connection closed")

    @property
    def client(self) -> Redis:
        """Get the Redis client instance.

        Raises:
            RuntimeError: If not connected.
        """
        if self._client is None:
            msg = "Redis client not connected. Call connect() first."
            raise RuntimeError(msg)
        return self._client

    @staticmethod
    def tag_key(tag: str) -> str:
        return f"tag:{tag}"

    @retry(
        max_attempts=redis_settings.max_retries,
        initial_delay=redis_settings.retry_delay,
        max_delay=5.0,
        exceptions=(RedisConnectionError, RedisTimeoutError),
    )
    async def get(self, key: str) -> Any:
        """Get a value, or ``MISSING`` when absent.

        Raises:
            RetryError: If Redis stays unreachable after retries.
        """
        payload = await self.client.get(key)
        if payload is None:
            return MISSING
        return loads(payload)

    @retry(
        max_attempts=redis_settings.max_retries,
        initial_delay=redis_settings.retry_delay,
        max_delay=5.0,
        exceptions=(RedisConnectionError, RedisTimeoutError),
    )
    async def set(self, key: str, value: Any, tags: Iterable[str], ttl: int | None = None) -> None:
        """Store a value and register its key in every tag set.

        Raises:
            RetryError: If Redis stays unreachable after retries.
        """
        payload = dumps(value)
        async with self.client.pipeline(transaction=False) as pipe:
            pipe.set(key, payload, ex=ttl)
            for tag in tags:
                tag_key = self.tag_key(tag)
                pipe.sadd(tag_key, key)
                if ttl:
                    # Tag set outlives its members slightly
                    pipe.expire(tag_key, ttl + 60)
            await pipe.execute()

    @retry(
        max_attempts=redis_settings.max_retries,
        initial_delay=redis_settings.retry_delay,
        max_delay=5.0,
        exceptions=(RedisConnectionError, RedisTimeoutError),
    )
    async def invalidate_tags(self, tags: Iterable[str]) -> int:
        """Delete every key referenced by the tag sets.

        Only the members read here are removed from each tag set, so a key
        registered concurrently keeps its membership for the next
        invalidation.

        Returns:
            Number of deleted value keys
        """
        tag_keys = [self.tag_key(tag) for tag in tags]
        if not tag_keys:
            return 0

        members_by_tag: dict[str, list[str]] = {}
        for tag_key in tag_keys:
            members = await cast("Awaitable[set[Any]]", self.client.smembers(tag_key))
            decoded = sorted(member.decode() if isinstance(member, bytes) else member for member in members)
            if decoded:
                members_by_tag[tag_key] = decoded

        keys = sorted({key for members in members_by_tag.values() for key in members})
        if not keys:
            return 0

        async with self.client.pipeline(transaction=True) as pipe:
            pipe.delete(*keys)
            for tag_key, members in members_by_tag.items():
                pipe.srem(tag_key, *members)
            results = await pipe.execute()

        deleted = int(results[0]) if results else 0
        logger.debug(
            "Tag invalidation",
            extra={"tags": tag_keys, "matched": len(keys), "deleted": deleted},
        )
        return deleted


__all__ = [
    "MISSING",
    "InMemoryTagAwareCache",
    "RedisTagAwareCache",
    "TagAwareCache",
    "dumps",
    "loads",
]
