"""Unit of work.

Queues document writes and the cache invalidations they imply, and
applies both only on commit:

    async with UnitOfWork(engine) as uow:
        uow.persist("Event", {"title": "PyCon", "speaker": speaker_id})
        uow.remove("Event", old_event, expected_version=3)
    # committed here; a raised exception rolls back instead

Invalidations are drained only after the store accepted every write, so
a failed commit never evicts cache entries that are still accurate.
"""

from __future__ import annotations

import logging
from types import TracebackType
from typing import TYPE_CHECKING, Any

from docquery.core.exceptions import (
    ConcurrencyConflictError,
    DuplicateKeyError,
    InvalidInputError,
    QueryExecutionError,
)
from docquery.infra.cache import PendingInvalidations
from docquery.infra.store.base import ID_FIELD, DeleteDocument, DocumentWrite, UpsertDocument

if TYPE_CHECKING:
    from docquery.core.engine.engine import QueryEngine

logger = logging.getLogger(__name__)


class UnitOfWork:
    """Batch of writes committed together.

    Args:
        engine: Engine whose store and cache the unit of work writes through
        use_transaction: Default for :meth:`commit`; falls back to the
            engine's ``use_transactions`` setting
    """

    def __init__(self, engine: QueryEngine, *, use_transaction: bool | None = None) -> None:
        self._engine = engine
        self._use_transaction = use_transaction
        self._writes: list[DocumentWrite] = []
        self._pending = PendingInvalidations()

    @property
    def pending(self) -> PendingInvalidations:
        return self._pending

    @property
    def writes(self) -> tuple[DocumentWrite, ...]:
        return tuple(self._writes)

    def persist(self, document_type: str, document: Any, expected_version: int | None = None) -> UpsertDocument:
        """Schedule a document for creation or replacement.

        Documents without an id are inserted; the id is assigned to the
        returned write's document (the same dict for dict documents) on
        commit.
        """
        doc_type = self._engine.registry.get(document_type)
        write = UpsertDocument(
            collection=doc_type.collection,
            document=doc_type.dump(document),
            expected_version=expected_version,
            reference_fields=tuple(doc_type.references),
        )
        self._writes.append(write)
        self._pending.add(doc_type.name)
        return write

    def remove(self, document_type: str, document: Any, expected_version: int | None = None) -> DeleteDocument:
        """Schedule a document for removal.

        Raises:
            InvalidInputError: If the document has no id
        """
        doc_type = self._engine.registry.get(document_type)
        document_id = doc_type.read(document, ID_FIELD) if not isinstance(document, str) else document
        if document_id is None:
            msg = f"Cannot remove a {doc_type.name} without an id"
            raise InvalidInputError(msg, field=ID_FIELD)

        write = DeleteDocument(doc_type.collection, str(document_id), expected_version)
        self._writes.append(write)
        self._pending.add(doc_type.name)
        return write

    async def commit(self, use_transaction: bool | None = None) -> None:
        """Apply queued writes, then invalidate the affected document types.

        Raises:
            ConcurrencyConflictError: If an expected version does not match
            DuplicateKeyError: If a unique constraint is violated
            QueryExecutionError: For any other store failure
        """
        if use_transaction is None:
            use_transaction = (
                self._use_transaction if self._use_transaction is not None else self._engine.use_transactions
            )

        writes, self._writes = self._writes, []
        try:
            if writes:
                await self._engine.store.apply_writes(writes, use_transaction=use_transaction)
        except (ConcurrencyConflictError, DuplicateKeyError):
            self._pending.clear()
            raise
        except Exception as e:
            self._pending.clear()
            msg = f"Failed at persisting the document(s). Original error message: {e}"
            raise QueryExecutionError(msg, details={"writes": len(writes)}) from e

        invalidated = await self._engine.cache.invalidate_cache(self._pending)
        logger.info(
            "Unit of work committed",
            extra={"writes": len(writes), "invalidated": invalidated, "transaction": use_transaction},
        )

    def rollback(self) -> None:
        """Discard queued writes and pending invalidations."""
        if self._writes or self._pending:
            logger.info("Unit of work rolled back", extra={"writes": len(self._writes)})
        self._writes.clear()
        self._pending.clear()

    async def __aenter__(self) -> UnitOfWork:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        if exc_type is not None:
            self.rollback()
            return
        await self.commit()


__all__ = ["UnitOfWork"]
