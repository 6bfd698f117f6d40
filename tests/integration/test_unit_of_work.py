"""Integration tests for UnitOfWork commits, rollbacks and cache invalidation."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from docquery.core.engine import UnitOfWork
from docquery.core.exceptions import ConcurrencyConflictError, InvalidInputError, QueryExecutionError
from docquery.core.query import FiltersDescriptor, QueryCriteria
from docquery.infra.store.base import DeleteDocument, UpsertDocument
from tests.utils import event_id


def all_events() -> QueryCriteria:
    return QueryCriteria().set_filters_descriptor(FiltersDescriptor()).set_read_only()


@pytest.mark.integration
class TestUnitOfWork:
    """Commit and rollback behavior."""

    async def test_commit_inserts_and_assigns_id(self, engine, store):
        """New documents get an id and version 1 on commit."""
        uow = UnitOfWork(engine)
        document = {"title": "PyCon Italia", "speaker": "speaker-it"}

        write = uow.persist("Event", document)
        await uow.commit()

        assert write.document is document
        assert document["id"]
        assert await store.get_version("events", document["id"]) == 1
        assert uow.writes == ()

    async def test_invalidation_waits_for_commit(self, engine):
        """Cached reads stay until the writes are committed."""
        assert await engine.count("Event", all_events()) == 9
        uow = UnitOfWork(engine)

        uow.persist("Event", {"title": "New"})
        assert "Event" in uow.pending
        assert await engine.count("Event", all_events()) == 9

        await uow.commit()

        assert len(uow.pending) == 0
        assert await engine.count("Event", all_events()) == 10

    async def test_remove_by_document_and_by_id(self, engine):
        """Documents can be removed by document or by id."""
        uow = UnitOfWork(engine)

        uow.remove("Event", {"id": event_id(1)})
        uow.remove("Event", event_id(2))
        await uow.commit()

        assert await engine.count("Event", all_events()) == 7

    async def test_remove_requires_id(self, engine):
        """Documents without an id cannot be removed."""
        with pytest.raises(InvalidInputError):
            UnitOfWork(engine).remove("Event", {"title": "no id"})

    async def test_rollback_discards_everything(self, engine, store):
        """Rolled back writes never reach the store."""
        uow = UnitOfWork(engine)
        uow.persist("Event", {"title": "Draft"})

        uow.rollback()
        await uow.commit()

        assert uow.writes == ()
        assert len(uow.pending) == 0
        assert await engine.count("Event", all_events()) == 9

    async def test_conflict_keeps_cache(self, engine):
        """A failed commit does not invalidate accurate cache entries."""
        assert await engine.count("Event", all_events()) == 9
        uow = UnitOfWork(engine)
        uow.persist("Event", {"id": event_id(1), "title": "Stale"}, expected_version=4)

        with pytest.raises(ConcurrencyConflictError):
            await uow.commit()

        assert len(uow.pending) == 0
        assert len(engine.cache.backend) > 0

    async def test_store_failures_are_wrapped(self, engine, monkeypatch):
        """Unexpected store errors become QueryExecutionError."""
        monkeypatch.setattr(engine.store, "apply_writes", AsyncMock(side_effect=RuntimeError("disk full")))
        uow = UnitOfWork(engine)
        uow.persist("Event", {"title": "New"})

        with pytest.raises(QueryExecutionError, match="disk full"):
            await uow.commit()

    async def test_transaction_flag(self, engine, monkeypatch):
        """The transaction flag reaches the store."""
        apply_writes = AsyncMock()
        monkeypatch.setattr(engine.store, "apply_writes", apply_writes)
        uow = UnitOfWork(engine, use_transaction=True)
        uow.persist("Event", {"title": "New"})

        await uow.commit()

        writes = apply_writes.await_args.args[0]
        assert isinstance(writes[0], UpsertDocument)
        assert writes[0].reference_fields == ("speaker",)
        assert apply_writes.await_args.kwargs == {"use_transaction": True}

    async def test_writes_are_applied_in_order(self, engine, monkeypatch):
        """Queued writes keep their order."""
        apply_writes = AsyncMock()
        monkeypatch.setattr(engine.store, "apply_writes", apply_writes)
        uow = UnitOfWork(engine)

        uow.persist("Event", {"title": "New"})
        uow.remove("Event", event_id(3), expected_version=2)
        await uow.commit()

        writes = apply_writes.await_args.args[0]
        assert [type(write) for write in writes] == [UpsertDocument, DeleteDocument]
        assert writes[1].expected_version == 2


@pytest.mark.integration
class TestUnitOfWorkContextManager:
    """async with usage."""

    async def test_commits_on_success(self, engine):
        """Leaving the block commits."""
        async with UnitOfWork(engine) as uow:
            uow.persist("Speaker", {"name": "Ada", "country": "UK"})

        criteria = QueryCriteria().set_filters_descriptor(FiltersDescriptor().equals("country", "UK"))
        assert await engine.count("Speaker", criteria) == 1

    async def test_rolls_back_on_error(self, engine):
        """An exception rolls back and propagates."""
        with pytest.raises(ValueError, match="abort"):
            async with UnitOfWork(engine) as uow:
                uow.persist("Speaker", {"name": "Ada", "country": "UK"})
                raise ValueError("abort")

        criteria = QueryCriteria().set_filters_descriptor(FiltersDescriptor().equals("country", "UK"))
        assert await engine.count("Speaker", criteria) == 0
