"""Document store driver contract.

The engine talks to storage exclusively through :class:`DocumentStore`.
Queries are described with a store-neutral expression tree:

    StoreQuery(
        collection="events",
        expressions=(
            FieldCondition("status", FilterOperator.EQUALS, "published"),
            OrExpression((
                FieldCondition("date", FilterOperator.GT, cursor_value),
                AndExpression((
                    FieldCondition("date", FilterOperator.EQUALS, cursor_value),
                    FieldCondition("id", FilterOperator.GT, cursor_id),
                )),
            )),
        ),
        sort=(("date", SortDirection.ASC), ("id", SortDirection.ASC)),
        limit=10,
    )

Top-level expressions are implicitly AND-ed. Raw documents always expose
their identity under ``"id"`` regardless of the store's native key.
"""

from __future__ import annotations

import dataclasses
import time
from abc import ABC, abstractmethod
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

from docquery.core.query.filters import FilterOperator
from docquery.core.query.sorting import SortDirection
from docquery.core.query.update import UpdateOperation
from docquery.infra.metrics.prometheus import store_errors_total, store_operation_duration_seconds

ID_FIELD = "id"
VERSION_FIELD = "version"


@dataclass(frozen=True, slots=True)
class FieldCondition:
    """Leaf predicate on a single field.

    ``reference`` marks values that are ids of other documents, letting the
    driver coerce them to its native id type.
    """

    field: str
    operator: FilterOperator
    value: Any
    reference: bool = False


@dataclass(frozen=True, slots=True)
class AndExpression:
    expressions: tuple[Expression, ...]


@dataclass(frozen=True, slots=True)
class OrExpression:
    expressions: tuple[Expression, ...]


Expression = FieldCondition | AndExpression | OrExpression


@dataclass(frozen=True, slots=True)
class PrimeReference:
    """Reference field whose target documents should be loaded eagerly."""

    field: str
    collection: str


@dataclass(frozen=True, slots=True)
class StoreQuery:
    """Executable query against one collection."""

    collection: str
    expressions: tuple[Expression, ...] = ()
    sort: tuple[tuple[str, SortDirection], ...] = ()
    skip: int = 0
    limit: int | None = None
    select: tuple[str, ...] = ()
    exclude: tuple[str, ...] = ()
    prime: tuple[PrimeReference, ...] = ()
    read_only: bool = False

    def replace(self, **changes: Any) -> StoreQuery:
        return dataclasses.replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "collection": self.collection,
            "expressions": [expression_to_dict(expression) for expression in self.expressions],
            "sort": [[field, int(direction)] for field, direction in self.sort],
            "skip": self.skip,
            "limit": self.limit,
            "select": list(self.select),
            "exclude": list(self.exclude),
            "prime": [reference.field for reference in self.prime],
            "read_only": self.read_only,
        }


def expression_to_dict(expression: Expression) -> dict[str, Any]:
    """Plain representation of an expression, for logging."""
    match expression:
        case FieldCondition(field=field, operator=operator, value=value, reference=reference):
            return {"field": field, "operator": operator.value, "value": repr(value), "reference": reference}
        case AndExpression(expressions=children):
            return {"and": [expression_to_dict(child) for child in children]}
        case OrExpression(expressions=children):
            return {"or": [expression_to_dict(child) for child in children]}
    msg = f"Unknown expression: {expression!r}"
    raise TypeError(msg)


@dataclass(frozen=True, slots=True)
class UpsertDocument:
    """Insert or replace a document.

    When ``expected_version`` is set the write only succeeds if the stored
    version matches. Documents without an id get one assigned in place.
    ``reference_fields`` name the fields holding ids of other documents.
    """

    collection: str
    document: dict[str, Any]
    expected_version: int | None = None
    reference_fields: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class DeleteDocument:
    collection: str
    document_id: str
    expected_version: int | None = None


DocumentWrite = UpsertDocument | DeleteDocument


class DocumentStore(ABC):
    """Asynchronous document store driver.

    Implementations must raise DuplicateKeyError on unique constraint
    violations and ConcurrencyConflictError on version mismatches; other
    driver errors propagate unchanged.
    """

    @abstractmethod
    async def find(self, query: StoreQuery) -> list[dict[str, Any]]:
        """Return the raw documents matching ``query``."""

    @abstractmethod
    async def count(self, query: StoreQuery) -> int:
        """Count matches, honouring ``skip`` and ``limit``."""

    @abstractmethod
    async def distinct(self, query: StoreQuery, field: str) -> list[Any]:
        """Return the distinct values of ``field`` among matches."""

    @abstractmethod
    async def update(self, query: StoreQuery, operations: Sequence[UpdateOperation], *, multi: bool) -> int:
        """Apply update operations to the first (or every) match.

        Returns:
            Number of modified documents
        """

    @abstractmethod
    async def delete(self, query: StoreQuery) -> int:
        """Delete every match and return the number of deleted documents."""

    @abstractmethod
    async def apply_writes(self, writes: Sequence[DocumentWrite], *, use_transaction: bool = False) -> None:
        """Apply queued unit-of-work writes in order."""

    @abstractmethod
    async def get_version(self, collection: str, document_id: str) -> int | None:
        """Return the stored version of a document, None when missing or unversioned."""

    async def close(self) -> None:
        """Release driver resources."""
        return None

    async def prime_references(
        self,
        documents: list[dict[str, Any]],
        references: Sequence[PrimeReference],
    ) -> list[dict[str, Any]]:
        """Replace reference ids with the referenced raw documents.

        One query per reference field loads every referenced document;
        ids without a matching document are left untouched.
        """
        for reference in references:
            ids: list[Any] = []
            for document in documents:
                value = document.get(reference.field)
                ids.extend(value if isinstance(value, list) else [value])
            ids = [value for value in dict.fromkeys(ids) if value is not None]
            if not ids:
                continue

            loaded = await self.find(
                StoreQuery(
                    collection=reference.collection,
                    expressions=(FieldCondition(ID_FIELD, FilterOperator.IN, ids, reference=True),),
                )
            )
            by_id = {str(item[ID_FIELD]): item for item in loaded}

            for document in documents:
                value = document.get(reference.field)
                if isinstance(value, list):
                    document[reference.field] = [by_id.get(str(item), item) for item in value]
                elif value is not None:
                    document[reference.field] = by_id.get(str(value), value)
        return documents

    @contextmanager
    def _observe(self, operation: str, collection: str) -> Iterator[None]:
        """Record duration and failures of a store operation."""
        start = time.perf_counter()
        try:
            yield
        except Exception as e:
            store_errors_total.labels(operation=operation, error_type=type(e).__name__).inc()
            raise
        finally:
            store_operation_duration_seconds.labels(operation=operation, collection=collection).observe(
                time.perf_counter() - start
            )


__all__ = [
    "ID_FIELD",
    "VERSION_FIELD",
    "AndExpression",
    "DeleteDocument",
    "DocumentStore",
    "DocumentWrite",
    "Expression",
    "FieldCondition",
    "OrExpression",
    "PrimeReference",
    "StoreQuery",
    "UpsertDocument",
    "expression_to_dict",
]
