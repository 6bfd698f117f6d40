"""In-process document store.

Evaluates the full expression tree in Python with MongoDB-like semantics:

- a predicate on an array field matches when the array itself or any of
  its elements matches
- a missing field equals ``None``
- range operators only compare values of the same kind (numbers with
  numbers, strings with strings, datetimes with datetimes)
- ascending sort puts missing / null values first

Used by the test suite and for local development (``STORE_BACKEND=memory``).
"""

from __future__ import annotations

import copy
import logging
import math
import uuid
from collections.abc import Iterable, Mapping, Sequence
from datetime import datetime
from typing import Any

from docquery.core.exceptions import ConcurrencyConflictError, DuplicateKeyError
from docquery.core.query.filters import FilterOperator, RegexPattern
from docquery.core.query.sorting import SortDirection
from docquery.core.query.update import UpdateOperation, UpdateOperator
from docquery.infra.store.base import (
    ID_FIELD,
    VERSION_FIELD,
    AndExpression,
    DeleteDocument,
    DocumentStore,
    DocumentWrite,
    Expression,
    FieldCondition,
    OrExpression,
    StoreQuery,
    UpsertDocument,
)
from docquery.utils.fields import get_field_value, has_field

logger = logging.getLogger(__name__)

_MISSING = object()

# BSON comparison order of value kinds
_NULL, _NUMBER, _STRING, _OBJECT, _ARRAY, _BOOLEAN, _DATE = range(7)


def _kind(value: Any) -> int:
    match value:
        case None:
            return _NULL
        case bool():
            return _BOOLEAN
        case int() | float():
            return _NUMBER
        case str():
            return _STRING
        case datetime():
            return _DATE
        case Mapping():
            return _OBJECT
        case list() | tuple():
            return _ARRAY
        case _:
            return _STRING


def _sort_key(value: Any) -> tuple[int, Any]:
    kind = _kind(value)
    if kind == _NULL:
        return (kind, 0)
    if kind in (_OBJECT, _ARRAY) or (kind == _STRING and not isinstance(value, str)):
        return (kind, repr(value))
    if kind == _DATE and value.tzinfo is not None:
        return (kind, value.replace(tzinfo=None) - value.utcoffset())
    return (kind, value)


def _candidates(document: Any, field: str) -> list[Any]:
    """Values a predicate on ``field`` is tested against."""
    value = get_field_value(document, field, _MISSING)
    if value is _MISSING:
        return [None]
    if isinstance(value, list):
        return [value, *value]
    return [value]


def _comparable(left: Any, right: Any) -> bool:
    left_kind, right_kind = _kind(left), _kind(right)
    return left_kind == right_kind and left_kind in (_NUMBER, _STRING, _DATE, _BOOLEAN)


def _point(value: Any) -> tuple[float, float] | None:
    """Extract ``(lng, lat)`` from a legacy pair or a GeoJSON point."""
    if isinstance(value, Mapping):
        value = value.get("coordinates")
    if isinstance(value, list | tuple) and len(value) == 2 and all(isinstance(c, int | float) for c in value):
        return float(value[0]), float(value[1])
    return None


def _in_polygon(point: tuple[float, float], polygon: Sequence[Sequence[float]]) -> bool:
    """Ray casting point-in-polygon test on planar coordinates."""
    x, y = point
    inside = False
    for (x1, y1), (x2, y2) in zip(polygon, polygon[1:], strict=False):
        if (y1 > y) != (y2 > y):
            crossing = x1 + (y - y1) * (x2 - x1) / (y2 - y1)
            if x < crossing:
                inside = not inside
    return inside


def _angular_distance(a: tuple[float, float], b: tuple[float, float]) -> float:
    """Haversine distance in radians between two ``(lng, lat)`` points."""
    lng1, lat1, lng2, lat2 = map(math.radians, (*a, *b))
    h = math.sin((lat2 - lat1) / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin((lng2 - lng1) / 2) ** 2
    return 2 * math.asin(min(1.0, math.sqrt(h)))


def _text_terms(value: str) -> set[str]:
    return {term.lower() for term in value.split() if term}


def matches(document: Mapping[str, Any], expression: Expression) -> bool:
    """Evaluate an expression against a raw document."""
    match expression:
        case AndExpression(expressions=children):
            return all(matches(document, child) for child in children)
        case OrExpression(expressions=children):
            return any(matches(document, child) for child in children)
        case FieldCondition():
            return _matches_condition(document, expression)
    msg = f"Unknown expression: {expression!r}"
    raise TypeError(msg)


def _matches_condition(document: Mapping[str, Any], condition: FieldCondition) -> bool:
    field, value = condition.field, condition.value
    match condition.operator:
        case FilterOperator.EQUALS:
            return any(candidate == value for candidate in _candidates(document, field))
        case FilterOperator.NOT_EQUAL:
            return not any(candidate == value for candidate in _candidates(document, field))
        case FilterOperator.IN:
            return any(candidate in value for candidate in _candidates(document, field) if not isinstance(candidate, list))
        case FilterOperator.NOT_IN:
            return not any(
                candidate in value for candidate in _candidates(document, field) if not isinstance(candidate, list)
            )
        case FilterOperator.GT:
            return any(_comparable(c, value) and _sort_key(c) > _sort_key(value) for c in _candidates(document, field))
        case FilterOperator.GTE:
            return any(_comparable(c, value) and _sort_key(c) >= _sort_key(value) for c in _candidates(document, field))
        case FilterOperator.LT:
            return any(_comparable(c, value) and _sort_key(c) < _sort_key(value) for c in _candidates(document, field))
        case FilterOperator.LTE:
            return any(_comparable(c, value) and _sort_key(c) <= _sort_key(value) for c in _candidates(document, field))
        case FilterOperator.REGEX:
            pattern = value.compile() if isinstance(value, RegexPattern) else RegexPattern(str(value), False).compile()
            return any(isinstance(c, str) and pattern.search(c) is not None for c in _candidates(document, field))
        case FilterOperator.TEXT:
            terms = _text_terms(value)
            return any(isinstance(c, str) and terms & _text_terms(c) for c in _candidates(document, field))
        case FilterOperator.SIZE:
            actual = get_field_value(document, field)
            return isinstance(actual, list) and len(actual) == value
        case FilterOperator.EXISTS:
            return has_field(document, field) == value
        case FilterOperator.ALL:
            actual = get_field_value(document, field)
            return isinstance(actual, list) and all(item in actual for item in value)
        case FilterOperator.GEO_WITHIN_POLYGON:
            point = _point(get_field_value(document, field))
            return point is not None and _in_polygon(point, value)
        case FilterOperator.GEO_WITHIN_CENTER_SPHERE:
            point = _point(get_field_value(document, field))
            longitude, latitude, radius = value
            return point is not None and _angular_distance(point, (longitude, latitude)) <= radius
    msg = f"Unsupported operator: {condition.operator!r}"
    raise ValueError(msg)


def sort_documents(
    documents: Iterable[Mapping[str, Any]],
    sort: Sequence[tuple[str, SortDirection]],
) -> list[Mapping[str, Any]]:
    """Stable multi-key sort with BSON-like ordering across value kinds."""
    result = list(documents)
    for field, direction in reversed(sort):
        result.sort(
            key=lambda document, field=field: _sort_key(get_field_value(document, field)),
            reverse=direction == SortDirection.DESC,
        )
    return result


def _project(document: Mapping[str, Any], select: Sequence[str], exclude: Sequence[str]) -> dict[str, Any]:
    if select:
        roots = {field.split(".", 1)[0] for field in select} | {ID_FIELD}
        return {key: copy.deepcopy(value) for key, value in document.items() if key in roots}
    projected = copy.deepcopy(dict(document))
    for field in exclude:
        if field != ID_FIELD:
            projected.pop(field, None)
    return projected


def _set_path(document: dict[str, Any], path: str, value: Any) -> None:
    *parents, leaf = path.split(".")
    current = document
    for segment in parents:
        current = current.setdefault(segment, {})
    current[leaf] = value


class MemoryDocumentStore(DocumentStore):
    """Document store keeping collections in process memory.

    Args:
        unique_fields: Collection name -> fields whose values must be unique

    Example:
        store = MemoryDocumentStore(unique_fields={"users": ["email"]})
        await store.apply_writes([UpsertDocument("users", {"email": "a@b.c"})])
    """

    def __init__(self, unique_fields: Mapping[str, Sequence[str]] | None = None) -> None:
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._unique_fields = {name: tuple(fields) for name, fields in (unique_fields or {}).items()}

    def _collection(self, name: str) -> dict[str, dict[str, Any]]:
        return self._collections.setdefault(name, {})

    def _matching(self, query: StoreQuery) -> list[Mapping[str, Any]]:
        documents = [
            document
            for document in self._collection(query.collection).values()
            if all(matches(document, expression) for expression in query.expressions)
        ]
        documents = sort_documents(documents, query.sort)
        end = None if query.limit is None else query.skip + query.limit
        return documents[query.skip : end]

    def insert_many(self, collection: str, documents: Iterable[Mapping[str, Any]]) -> list[str]:
        """Seed documents directly, bypassing version and unique checks."""
        ids = []
        target = self._collection(collection)
        for document in documents:
            stored = copy.deepcopy(dict(document))
            stored.setdefault(ID_FIELD, uuid.uuid4().hex[:24])
            stored[ID_FIELD] = str(stored[ID_FIELD])
            target[stored[ID_FIELD]] = stored
            ids.append(stored[ID_FIELD])
        return ids

    async def find(self, query: StoreQuery) -> list[dict[str, Any]]:
        with self._observe("find", query.collection):
            documents = [_project(document, query.select, query.exclude) for document in self._matching(query)]
            if query.prime:
                documents = await self.prime_references(documents, query.prime)
            return documents

    async def count(self, query: StoreQuery) -> int:
        with self._observe("count", query.collection):
            return len(self._matching(query))

    async def distinct(self, query: StoreQuery, field: str) -> list[Any]:
        with self._observe("distinct", query.collection):
            values: list[Any] = []
            for document in self._matching(query):
                value = get_field_value(document, field, _MISSING)
                if value is _MISSING:
                    continue
                for item in value if isinstance(value, list) else [value]:
                    if item not in values:
                        values.append(copy.deepcopy(item))
            return values

    async def update(self, query: StoreQuery, operations: Sequence[UpdateOperation], *, multi: bool) -> int:
        with self._observe("update", query.collection):
            targets = self._matching(query.replace(skip=0, limit=None))
            if not multi:
                targets = targets[:1]
            updated: dict[str, dict[str, Any]] = {}
            for document in targets:
                candidate = copy.deepcopy(dict(document))
                for operation in operations:
                    self._apply_operation(candidate, operation)
                updated[candidate[ID_FIELD]] = candidate

            collection = self._collection(query.collection)
            staged = {**collection, **updated}
            for document_id, document in updated.items():
                self._check_unique(query.collection, staged, document_id, document)
            collection.update(updated)
            return len(targets)

    def _check_unique(
        self,
        collection_name: str,
        collection: Mapping[str, Mapping[str, Any]],
        document_id: str,
        document: Mapping[str, Any],
    ) -> None:
        for field in self._unique_fields.get(collection_name, ()):
            value = get_field_value(document, field)
            if value is None:
                continue
            for other_id, other in collection.items():
                if other_id != document_id and get_field_value(other, field) == value:
                    raise DuplicateKeyError(collection_name, details={"field": field})

    @staticmethod
    def _apply_operation(document: Any, operation: UpdateOperation) -> None:
        current = get_field_value(document, operation.field)
        match operation.operator:
            case UpdateOperator.SET:
                _set_path(document, operation.field, copy.deepcopy(operation.value))
            case UpdateOperator.PUSH:
                if current is None:
                    current = []
                if not isinstance(current, list):
                    msg = f"Cannot push to non-array field {operation.field!r}"
                    raise ValueError(msg)
                _set_path(document, operation.field, [*current, copy.deepcopy(operation.value)])
            case UpdateOperator.INC:
                if current is not None and (not isinstance(current, int | float) or isinstance(current, bool)):
                    msg = f"Cannot increment non-numeric field {operation.field!r}"
                    raise ValueError(msg)
                _set_path(document, operation.field, (current or 0) + operation.value)

    async def delete(self, query: StoreQuery) -> int:
        with self._observe("delete", query.collection):
            targets = self._matching(query.replace(skip=0, limit=None))
            collection = self._collection(query.collection)
            for document in targets:
                collection.pop(document[ID_FIELD], None)
            return len(targets)

    async def apply_writes(self, writes: Sequence[DocumentWrite], *, use_transaction: bool = False) -> None:
        """Apply writes atomically.

        Writes are staged on a copy of the affected collections and only
        swapped in once every write succeeded, so a failing write leaves the
        store untouched regardless of ``use_transaction``.
        """
        names = {write.collection for write in writes}
        with self._observe("apply_writes", ",".join(sorted(names))):
            staged = {name: dict(self._collection(name)) for name in names}
            for write in writes:
                match write:
                    case UpsertDocument():
                        self._stage_upsert(staged[write.collection], write)
                    case DeleteDocument():
                        self._stage_delete(staged[write.collection], write)
            self._collections.update(staged)
            logger.debug("Applied writes", extra={"writes": len(writes), "collections": sorted(names)})

    def _stage_upsert(self, collection: dict[str, dict[str, Any]], write: UpsertDocument) -> None:
        document = write.document
        if document.get(ID_FIELD) is None:
            document[ID_FIELD] = uuid.uuid4().hex[:24]
        document_id = str(document[ID_FIELD])
        existing = collection.get(document_id)
        current_version = existing.get(VERSION_FIELD) if existing else None

        if write.expected_version is not None and current_version != write.expected_version:
            raise ConcurrencyConflictError(write.collection, document_id, write.expected_version, current_version)

        self._check_unique(write.collection, collection, document_id, document)

        stored = copy.deepcopy(document)
        stored[ID_FIELD] = document_id
        stored[VERSION_FIELD] = (current_version or 0) + 1
        collection[document_id] = stored

    @staticmethod
    def _stage_delete(collection: dict[str, dict[str, Any]], write: DeleteDocument) -> None:
        existing = collection.get(str(write.document_id))
        if write.expected_version is not None:
            current_version = existing.get(VERSION_FIELD) if existing else None
            if current_version != write.expected_version:
                raise ConcurrencyConflictError(
                    write.collection, str(write.document_id), write.expected_version, current_version
                )
        collection.pop(str(write.document_id), None)

    async def get_version(self, collection: str, document_id: str) -> int | None:
        document = self._collection(collection).get(str(document_id))
        return document.get(VERSION_FIELD) if document else None


__all__ = ["MemoryDocumentStore", "matches", "sort_documents"]
