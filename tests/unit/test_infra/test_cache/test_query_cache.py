"""Tests for the tagged query result cache.

Tests cover:
- build_key() / build_tag() stability
- get() hit, miss and bypass paths, with and without post-processing
- Deferred (scheduled) and immediate invalidation
- Backend behavior: deep copies, TTL expiry, MISSING vs cached None
- Hit, miss and bypass counters
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from docquery.core.query import CursorSubsetDescriptor, FiltersDescriptor, QueryCriteria
from docquery.core.settings import CacheSettings
from docquery.infra.cache import MISSING, InMemoryTagAwareCache, QueryCache, QueryKind
from docquery.infra.cache.query_cache import PendingInvalidations, create_query_cache
from docquery.infra.metrics import REGISTRY


def published_criteria() -> QueryCriteria:
    return QueryCriteria().set_filters_descriptor(FiltersDescriptor().equals("status", "published"))


# ============================================================================
# Keys and tags
# ============================================================================


@pytest.mark.unit
class TestKeys:
    """Tests for key and tag derivation."""

    def test_equal_criteria_share_a_key(self, query_cache):
        """Structurally equal criteria map to the same key."""
        first = query_cache.build_key("Event", published_criteria(), QueryKind.FIND)
        second = query_cache.build_key("Event", published_criteria(), QueryKind.FIND)

        assert first == second
        assert first.startswith("test:find|")

    def test_key_depends_on_kind_type_and_criteria(self, query_cache):
        """Kind, document type and criteria all take part in the key."""
        base = query_cache.build_key("Event", published_criteria(), QueryKind.FIND)

        assert base != query_cache.build_key("Event", published_criteria(), QueryKind.COUNT)
        assert base != query_cache.build_key("Speaker", published_criteria(), QueryKind.FIND)
        assert base != query_cache.build_key(
            "Event",
            published_criteria().set_cursor_subset_descriptor(CursorSubsetDescriptor(first=2)),
            QueryKind.FIND,
        )

    def test_tag_is_prefixed_per_document_type(self, query_cache):
        """Each document type has its own tag."""
        tag = query_cache.build_tag("Event")

        assert tag.startswith("test:")
        assert tag == query_cache.build_tag("Event")
        assert tag != query_cache.build_tag("Speaker")


# ============================================================================
# Lookup
# ============================================================================


@pytest.mark.unit
class TestGet:
    """Tests for QueryCache.get()."""

    async def test_miss_then_hit(self, query_cache):
        """The callback runs once; the second call is served from the cache."""
        callback = AsyncMock(return_value=[{"id": "e1"}])

        first = await query_cache.get("Event", published_criteria(), QueryKind.FIND, True, callback)
        second = await query_cache.get("Event", published_criteria(), QueryKind.FIND, True, callback)

        assert first == second == [{"id": "e1"}]
        callback.assert_awaited_once()

    async def test_bypass_always_runs_query(self, query_cache, cache_backend):
        """use_cached_value=False neither reads nor writes the cache."""
        callback = AsyncMock(return_value=3)

        await query_cache.get("Event", published_criteria(), QueryKind.COUNT, False, callback)
        await query_cache.get("Event", published_criteria(), QueryKind.COUNT, False, callback)

        assert callback.await_count == 2
        assert len(cache_backend) == 0

    async def test_disabled_cache_runs_query(self, cache_backend):
        """A disabled cache behaves like a bypass."""
        cache = QueryCache(cache_backend, enabled=False)
        callback = AsyncMock(return_value=3)

        await cache.get("Event", published_criteria(), QueryKind.COUNT, True, callback)
        await cache.get("Event", published_criteria(), QueryKind.COUNT, True, callback)

        assert callback.await_count == 2

    async def test_cached_none_is_a_hit(self, query_cache):
        """None results are cached like any other value."""
        callback = AsyncMock(return_value=None)

        await query_cache.get("Event", published_criteria(), QueryKind.GET_SINGLE_RESULT, True, callback)
        result = await query_cache.get("Event", published_criteria(), QueryKind.GET_SINGLE_RESULT, True, callback)

        assert result is None
        callback.assert_awaited_once()

    async def test_post_process_applies_on_every_path(self, query_cache, cache_backend):
        """Hydration runs on hit and miss; the raw value is what gets cached."""
        callback = AsyncMock(return_value=[{"id": "e1"}])

        def post_process(raw):
            return [document["id"] for document in raw]

        missed = await query_cache.get("Event", published_criteria(), QueryKind.FIND, True, callback, post_process)
        hit = await query_cache.get("Event", published_criteria(), QueryKind.FIND, True, callback, post_process)
        bypassed = await query_cache.get("Event", published_criteria(), QueryKind.FIND, False, callback, post_process)

        key = query_cache.build_key("Event", published_criteria(), QueryKind.FIND)
        assert missed == hit == bypassed == ["e1"]
        assert await cache_backend.get(key) == [{"id": "e1"}]


# ============================================================================
# Invalidation
# ============================================================================


@pytest.mark.unit
class TestInvalidation:
    """Tests for deferred and immediate invalidation."""

    async def test_scheduled_invalidation_waits_for_flush(self, query_cache):
        """Scheduling alone keeps entries; flushing drops them."""
        callback = AsyncMock(return_value=[])
        await query_cache.get("Event", published_criteria(), QueryKind.FIND, True, callback)

        query_cache.schedule_for_invalidation("Event")
        query_cache.schedule_for_invalidation("Event")
        await query_cache.get("Event", published_criteria(), QueryKind.FIND, True, callback)
        assert callback.await_count == 1

        invalidated = await query_cache.invalidate_cache()
        await query_cache.get("Event", published_criteria(), QueryKind.FIND, True, callback)

        assert invalidated == ["Event"]
        assert len(query_cache.pending) == 0
        assert callback.await_count == 2

    async def test_invalidation_is_per_document_type(self, query_cache):
        """Other document types keep their entries."""
        events = AsyncMock(return_value=[])
        speakers = AsyncMock(return_value=[])
        await query_cache.get("Event", published_criteria(), QueryKind.FIND, True, events)
        await query_cache.get("Speaker", published_criteria(), QueryKind.FIND, True, speakers)

        await query_cache.invalidate("Event")
        await query_cache.get("Event", published_criteria(), QueryKind.FIND, True, events)
        await query_cache.get("Speaker", published_criteria(), QueryKind.FIND, True, speakers)

        assert events.await_count == 2
        assert speakers.await_count == 1

    async def test_external_pending_list(self, query_cache):
        """A caller-owned pending list is drained instead of the shared one."""
        pending = PendingInvalidations()
        pending.add("Event")
        query_cache.schedule_for_invalidation("Speaker")

        assert await query_cache.invalidate_cache(pending) == ["Event"]
        assert "Speaker" in query_cache.pending

    async def test_empty_flush_is_noop(self, query_cache):
        """Nothing scheduled means nothing invalidated."""
        assert await query_cache.invalidate_cache() == []

    def test_discard_pending(self, query_cache):
        """Discarding drops scheduled types without invalidating."""
        query_cache.schedule_for_invalidation("Event")

        query_cache.discard_pending()

        assert len(query_cache.pending) == 0


# ============================================================================
# Backend and factory
# ============================================================================


@pytest.mark.unit
class TestInMemoryBackend:
    """Tests for InMemoryTagAwareCache."""

    async def test_values_are_copied(self):
        """Mutating a returned value leaves the entry intact."""
        backend = InMemoryTagAwareCache()
        await backend.set("k", {"tags": ["python"]}, tags=["t"])

        value = await backend.get("k")
        value["tags"].append("rust")

        assert await backend.get("k") == {"tags": ["python"]}

    async def test_ttl_expiry(self):
        """Expired entries read as MISSING."""
        backend = InMemoryTagAwareCache()
        await backend.set("k", 1, tags=["t"], ttl=1)
        backend._entries["k"] = (1, 0.0)

        assert await backend.get("k") is MISSING

    async def test_invalidate_counts_deleted_entries(self):
        """Entries shared by two tags are deleted once."""
        backend = InMemoryTagAwareCache()
        await backend.set("a", 1, tags=["t1", "t2"])
        await backend.set("b", 2, tags=["t2"])

        assert await backend.invalidate_tags(["t1", "t2"]) == 2
        assert len(backend) == 0

    async def test_concurrent_sets(self):
        """Concurrent writers do not lose entries."""
        backend = InMemoryTagAwareCache()

        await asyncio.gather(*(backend.set(f"k{i}", i, tags=["t"]) for i in range(20)))

        assert len(backend) == 20


@pytest.mark.unit
async def test_create_query_cache_memory_backend():
    """The memory backend needs no connection."""
    cache = await create_query_cache(CacheSettings(backend="memory", key_prefix="app", ttl=30))

    assert isinstance(cache.backend, InMemoryTagAwareCache)
    assert cache.build_tag("Event").startswith("app:")
    await cache.close()


# ============================================================================
# Metrics
# ============================================================================


def sample(name: str, **labels: str) -> float:
    return REGISTRY.get_sample_value(name, labels) or 0.0


@pytest.mark.unit
class TestCacheMetrics:
    """Tests for the Prometheus counters fed by the cache."""

    async def test_hits_and_misses_are_counted(self, query_cache):
        """A miss then a hit increments one counter each."""
        labels = {"document_type": "MetricsEvent", "query_kind": "count"}
        hits_before = sample("docquery_cache_hits_total", **labels)
        misses_before = sample("docquery_cache_misses_total", **labels)

        for _ in range(2):
            await query_cache.get("MetricsEvent", QueryCriteria(), QueryKind.COUNT, True, AsyncMock(return_value=3))

        assert sample("docquery_cache_hits_total", **labels) == hits_before + 1
        assert sample("docquery_cache_misses_total", **labels) == misses_before + 1

    async def test_bypass_is_counted(self, query_cache):
        """use_cached_value=False counts as a bypass."""
        labels = {"document_type": "MetricsEvent", "query_kind": "find"}
        before = sample("docquery_cache_bypass_total", **labels)

        await query_cache.get("MetricsEvent", QueryCriteria(), QueryKind.FIND, False, AsyncMock(return_value=[]))

        assert sample("docquery_cache_bypass_total", **labels) == before + 1
