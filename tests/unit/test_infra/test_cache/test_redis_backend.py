"""Tests for the Redis tag-aware cache backend.

Test Strategy:
- Mock the Redis client to isolate unit tests from a running server
- Verify the commands queued on pipelines for set and invalidation
- Verify retries on transient connection errors
"""

from __future__ import annotations

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from docquery.infra.cache import MISSING, RedisTagAwareCache
from docquery.infra.cache.backends import dumps, loads
from docquery.utils.retry import RetryError


@pytest.mark.unit
class TestSerialization:
    """Tests for JSON payload encoding."""

    def test_datetimes_round_trip(self):
        """Datetimes survive with their type and offset."""
        value = [{"id": "e1", "date": datetime(2025, 1, 2, 9, 0, tzinfo=UTC)}]

        assert loads(dumps(value)) == value

    def test_unknown_types_are_rejected(self):
        """Values that are not JSON friendly raise TypeError."""
        with pytest.raises(TypeError):
            dumps({"value": object()})


@pytest.mark.unit
class TestRedisTagAwareCache:
    """Tests for get / set / invalidate_tags."""

    async def test_get_missing_key(self, mock_redis):
        """An absent key reads as MISSING."""
        cache = RedisTagAwareCache(mock_redis)

        assert await cache.get("k") is MISSING
        mock_redis.get.assert_awaited_once_with("k")

    async def test_get_decodes_payload(self, mock_redis):
        """Stored JSON is decoded, including a cached null."""
        mock_redis.get.return_value = "null"
        cache = RedisTagAwareCache(mock_redis)

        assert await cache.get("k") is None

    async def test_set_registers_key_in_tag_sets(self, mock_redis):
        """The value and its tag memberships are written in one pipeline."""
        cache = RedisTagAwareCache(mock_redis)
        pipe = mock_redis.pipeline.return_value

        await cache.set("k", [1, 2], tags=["t1", "t2"], ttl=30)

        mock_redis.pipeline.assert_called_once_with(transaction=False)
        pipe.set.assert_called_once_with("k", "[1, 2]", ex=30)
        pipe.sadd.assert_any_call("tag:t1", "k")
        pipe.sadd.assert_any_call("tag:t2", "k")
        pipe.expire.assert_any_call("tag:t1", 90)
        pipe.execute.assert_awaited_once()

    async def test_set_without_ttl_does_not_expire_tags(self, mock_redis):
        """Tag sets only expire when entries do."""
        cache = RedisTagAwareCache(mock_redis)
        pipe = mock_redis.pipeline.return_value

        await cache.set("k", 1, tags=["t"])

        pipe.set.assert_called_once_with("k", "1", ex=None)
        pipe.expire.assert_not_called()

    async def test_invalidate_tags_deletes_members_and_removes_them_from_tags(self, mock_redis):
        """Member keys are deleted and removed from their tag sets in one transaction."""
        mock_redis.smembers.side_effect = [{"k2", "k1"}, {b"k3"}]
        pipe = mock_redis.pipeline.return_value
        pipe.execute.return_value = [3, 2, 1]
        cache = RedisTagAwareCache(mock_redis)

        deleted = await cache.invalidate_tags(["t1", "t2"])

        assert deleted == 3
        mock_redis.pipeline.assert_called_once_with(transaction=True)
        pipe.delete.assert_called_once_with("k1", "k2", "k3")
        assert [call.args for call in pipe.srem.call_args_list] == [
            ("tag:t1", "k1", "k2"),
            ("tag:t2", "k3"),
        ]

    async def test_key_registered_during_invalidation_keeps_its_tag(self, mock_redis):
        """A fill landing after the member read is invalidated by the next call."""
        tag_members = {"tag:t": {"k1"}}
        fills = iter(["k2"])

        async def smembers(tag_key):
            members = set(tag_members[tag_key])
            # Concurrent fill between the read and the transaction
            tag_members[tag_key].update(fills)
            return members

        mock_redis.smembers = AsyncMock(side_effect=smembers)
        pipe = mock_redis.pipeline.return_value
        pipe.srem = MagicMock(side_effect=lambda tag_key, *members: tag_members[tag_key].difference_update(members))
        pipe.execute.return_value = [1, 1]
        cache = RedisTagAwareCache(mock_redis)

        await cache.invalidate_tags(["t"])
        await cache.invalidate_tags(["t"])

        assert [call.args for call in pipe.delete.call_args_list] == [("k1",), ("k2",)]
        assert tag_members["tag:t"] == set()

    async def test_invalidate_unknown_tags(self, mock_redis):
        """Empty tag sets need no transaction."""
        cache = RedisTagAwareCache(mock_redis)

        assert await cache.invalidate_tags(["t"]) == 0
        mock_redis.smembers.assert_awaited_once_with("tag:t")
        mock_redis.pipeline.assert_not_called()

    async def test_invalidate_no_tags(self, mock_redis):
        """No tags means no round trip."""
        cache = RedisTagAwareCache(mock_redis)

        assert await cache.invalidate_tags([]) == 0
        mock_redis.pipeline.assert_not_called()

    async def test_get_retries_connection_errors(self, mock_redis):
        """Transient connection errors are retried."""
        mock_redis.get = AsyncMock(side_effect=[RedisConnectionError("down"), '"value"'])
        cache = RedisTagAwareCache(mock_redis)

        assert await cache.get("k") == "value"
        assert mock_redis.get.await_count == 2

    async def test_get_gives_up_after_max_retries(self, mock_redis):
        """Persistent failures raise RetryError."""
        mock_redis.get = AsyncMock(side_effect=RedisConnectionError("down"))
        cache = RedisTagAwareCache(mock_redis)

        with pytest.raises(RetryError):
            await cache.get("k")

    def test_client_requires_connection(self):
        """Using the backend before connect() is an error."""
        with pytest.raises(RuntimeError, match="not connected"):
            _ = RedisTagAwareCache().client

    async def test_disconnect_closes_client(self, mock_redis):
        """disconnect() closes and forgets the client."""
        cache = RedisTagAwareCache(mock_redis)

        await cache.disconnect()

        mock_redis.aclose.assert_awaited_once()
        with pytest.raises(RuntimeError):
            _ = cache.client
