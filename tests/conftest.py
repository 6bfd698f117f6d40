"""Pytest configuration and shared fixtures.

Fixtures are organized by category:
    - Document Fixtures: registry of the Event and Speaker types
    - Store Fixtures: seeded in-memory document store
    - Cache Fixtures: in-memory query cache and Redis mocks
    - Engine Fixtures: QueryEngine wired to the above

Seed data and criteria helpers live in ``tests.utils``.
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING
from unittest.mock import AsyncMock, MagicMock

import pytest

from docquery.core.engine import DocumentRegistry, DocumentType, QueryEngine
from docquery.core.settings import clear_all_caches
from docquery.infra.cache import InMemoryTagAwareCache, QueryCache
from docquery.infra.store import MemoryDocumentStore
from tests.utils import SPEAKERS, make_events

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterator

# Ensure tests run without external infrastructure
os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("CACHE_BACKEND", "memory")
os.environ.setdefault("LOG_JSON_LOGS", "false")


@pytest.fixture(autouse=True)
def fresh_settings() -> Iterator[None]:
    """Reload settings from the environment for every test."""
    clear_all_caches()
    yield
    clear_all_caches()


# ============================================================================
# Document Fixtures
# ============================================================================


@pytest.fixture
def registry() -> DocumentRegistry:
    """Registry with an Event type referencing a Speaker type."""
    return DocumentRegistry(
        [
            DocumentType(name="Speaker", collection="speakers"),
            DocumentType(name="Event", collection="events", references={"speaker": "Speaker"}),
        ]
    )


# ============================================================================
# Store Fixtures
# ============================================================================


@pytest.fixture
def store() -> MemoryDocumentStore:
    """In-memory store seeded with 9 events and 2 speakers."""
    memory_store = MemoryDocumentStore()
    memory_store.insert_many("events", make_events())
    memory_store.insert_many("speakers", SPEAKERS)
    return memory_store


# ============================================================================
# Cache Fixtures
# ============================================================================


@pytest.fixture
def cache_backend() -> InMemoryTagAwareCache:
    return InMemoryTagAwareCache()


@pytest.fixture
def query_cache(cache_backend: InMemoryTagAwareCache) -> QueryCache:
    return QueryCache(cache_backend, key_prefix="test")


@pytest.fixture
async def mock_redis() -> AsyncIterator[AsyncMock]:
    """Create a mock Redis client for testing the Redis cache backend.

    Provides a mocked client with:
    - get for value lookups
    - smembers for tag set reads
    - pipeline() returning an async context manager whose queued
      commands are plain calls and whose ``execute`` is awaited

    Yields:
        AsyncMock configured with Redis-like behavior.
    """
    redis_mock = AsyncMock()
    redis_mock.get = AsyncMock(return_value=None)
    redis_mock.smembers = AsyncMock(return_value=set())

    pipe = MagicMock()
    pipe.__aenter__ = AsyncMock(return_value=pipe)
    pipe.__aexit__ = AsyncMock(return_value=False)
    pipe.execute = AsyncMock(return_value=[])
    redis_mock.pipeline = MagicMock(return_value=pipe)

    yield redis_mock


# ============================================================================
# Engine Fixtures
# ============================================================================


@pytest.fixture
def engine(store: MemoryDocumentStore, registry: DocumentRegistry, query_cache: QueryCache) -> QueryEngine:
    return QueryEngine(store, registry, query_cache)
