"""MongoDB document store on the pymongo asyncio client.

Translates the store-neutral expression tree into MongoDB filter
documents, maps ``id`` to ``_id`` and converts ObjectIds to strings on the
way out so raw documents stay JSON friendly (and cacheable).
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any

from bson import ObjectId
from pymongo import AsyncMongoClient
from pymongo.errors import DuplicateKeyError as MongoDuplicateKeyError

from docquery.core.exceptions import ConcurrencyConflictError, DuplicateKeyError
from docquery.core.query.filters import FilterOperator, RegexPattern
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

if TYPE_CHECKING:
    from pymongo.asynchronous.client_session import AsyncClientSession
    from pymongo.asynchronous.collection import AsyncCollection

    from docquery.core.settings.store import StoreSettings

logger = logging.getLogger(__name__)

MONGO_ID_FIELD = "_id"

_COMPARISON_OPERATORS = {
    FilterOperator.NOT_EQUAL: "$ne",
    FilterOperator.IN: "$in",
    FilterOperator.NOT_IN: "$nin",
    FilterOperator.GT: "$gt",
    FilterOperator.GTE: "$gte",
    FilterOperator.LT: "$lt",
    FilterOperator.LTE: "$lte",
    FilterOperator.SIZE: "$size",
    FilterOperator.EXISTS: "$exists",
    FilterOperator.ALL: "$all",
}

_UPDATE_OPERATORS = {
    UpdateOperator.SET: "$set",
    UpdateOperator.PUSH: "$push",
    UpdateOperator.INC: "$inc",
}


def _field_name(field: str) -> str:
    return MONGO_ID_FIELD if field == ID_FIELD else field


def to_object_id(value: Any) -> Any:
    """Coerce id strings (and lists of them) to ObjectId when valid."""
    if isinstance(value, list | tuple):
        return [to_object_id(item) for item in value]
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return value


def from_mongo(value: Any) -> Any:
    """Convert a stored value to raw document form."""
    match value:
        case ObjectId():
            return str(value)
        case Mapping():
            return {
                (ID_FIELD if key == MONGO_ID_FIELD else key): from_mongo(item) for key, item in value.items()
            }
        case list():
            return [from_mongo(item) for item in value]
        case _:
            return value


def to_mongo_filter(expressions: Sequence[Expression]) -> dict[str, Any]:
    """Translate implicitly AND-ed expressions into a filter document."""
    clauses = [_translate(expression) for expression in expressions]
    if not clauses:
        return {}
    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}


def _translate(expression: Expression) -> dict[str, Any]:
    match expression:
        case AndExpression(expressions=children):
            return {"$and": [_translate(child) for child in children]}
        case OrExpression(expressions=children):
            return {"$or": [_translate(child) for child in children]}
        case FieldCondition():
            return _translate_condition(expression)
    msg = f"Unknown expression: {expression!r}"
    raise TypeError(msg)


def _translate_condition(condition: FieldCondition) -> dict[str, Any]:
    field = _field_name(condition.field)
    value = condition.value
    if condition.reference or field == MONGO_ID_FIELD:
        value = to_object_id(value)

    match condition.operator:
        case FilterOperator.EQUALS:
            return {field: {"$eq": value}}
        case FilterOperator.REGEX:
            pattern = value if isinstance(value, RegexPattern) else RegexPattern(str(value), False)
            return {field: {"$regex": pattern.pattern, "$options": "i" if pattern.case_insensitive else ""}}
        case FilterOperator.TEXT:
            # $text searches the collection's text index, not a single field
            return {"$text": {"$search": value}}
        case FilterOperator.GEO_WITHIN_POLYGON:
            return {field: {"$geoWithin": {"$polygon": value}}}
        case FilterOperator.GEO_WITHIN_CENTER_SPHERE:
            longitude, latitude, radius = value
            return {field: {"$geoWithin": {"$centerSphere": [[longitude, latitude], radius]}}}
        case operator if operator in _COMPARISON_OPERATORS:
            return {field: {_COMPARISON_OPERATORS[operator]: value}}
    msg = f"Unsupported operator: {condition.operator!r}"
    raise ValueError(msg)


def to_mongo_update(operations: Sequence[UpdateOperation]) -> dict[str, dict[str, Any]]:
    update: dict[str, dict[str, Any]] = {}
    for operation in operations:
        update.setdefault(_UPDATE_OPERATORS[operation.operator], {})[operation.field] = operation.value
    return update


def _projection(query: StoreQuery) -> dict[str, int] | None:
    if query.select:
        return {_field_name(field): 1 for field in query.select}
    if query.exclude:
        return {_field_name(field): 0 for field in query.exclude if field != ID_FIELD}
    return None


class MongoDocumentStore(DocumentStore):
    """Document store backed by MongoDB.

    Example:
        store = MongoDocumentStore.from_settings(get_store_settings())
        documents = await store.find(StoreQuery(collection="events", limit=10))
        await store.close()
    """

    def __init__(
        self,
        client: AsyncMongoClient,
        database: str,
        *,
        allow_disk_use: bool = True,
    ) -> None:
        self._client = client
        self._database = client[database]
        self._allow_disk_use = allow_disk_use

    @classmethod
    def from_settings(cls, settings: StoreSettings) -> MongoDocumentStore:
        client: AsyncMongoClient = AsyncMongoClient(
            settings.mongo_url,
            serverSelectionTimeoutMS=settings.server_selection_timeout_ms,
            tz_aware=True,
        )
        logger.info("MongoDB client created", extra={"database": settings.database})
        return cls(client, settings.database, allow_disk_use=settings.allow_disk_use)

    def _collection(self, name: str) -> AsyncCollection:
        return self._database[name]

    async def find(self, query: StoreQuery) -> list[dict[str, Any]]:
        with self._observe("find", query.collection):
            cursor = self._collection(query.collection).find(
                to_mongo_filter(query.expressions),
                projection=_projection(query),
                sort=[(_field_name(field), int(direction)) for field, direction in query.sort] or None,
                skip=query.skip,
                limit=query.limit or 0,
                allow_disk_use=self._allow_disk_use,
            )
            documents = [from_mongo(document) for document in await cursor.to_list()]
            if query.prime:
                documents = await self.prime_references(documents, query.prime)
            return documents

    async def count(self, query: StoreQuery) -> int:
        with self._observe("count", query.collection):
            options: dict[str, Any] = {}
            if query.skip:
                options["skip"] = query.skip
            if query.limit:
                options["limit"] = query.limit
            return await self._collection(query.collection).count_documents(
                to_mongo_filter(query.expressions), **options
            )

    async def distinct(self, query: StoreQuery, field: str) -> list[Any]:
        with self._observe("distinct", query.collection):
            values = await self._collection(query.collection).distinct(
                _field_name(field), to_mongo_filter(query.expressions)
            )
            return [from_mongo(value) for value in values]

    async def update(self, query: StoreQuery, operations: Sequence[UpdateOperation], *, multi: bool) -> int:
        with self._observe("update", query.collection):
            collection = self._collection(query.collection)
            method = collection.update_many if multi else collection.update_one
            try:
                result = await method(to_mongo_filter(query.expressions), to_mongo_update(operations))
            except MongoDuplicateKeyError as e:
                key = e.details.get("keyValue") if e.details else None
                raise DuplicateKeyError(query.collection, details={"key": key}) from e
            return result.modified_count

    async def delete(self, query: StoreQuery) -> int:
        with self._observe("delete", query.collection):
            result = await self._collection(query.collection).delete_many(to_mongo_filter(query.expressions))
            return result.deleted_count

    async def apply_writes(self, writes: Sequence[DocumentWrite], *, use_transaction: bool = False) -> None:
        collections = ",".join(sorted({write.collection for write in writes}))
        with self._observe("apply_writes", collections):
            if not use_transaction:
                await self._apply(writes, session=None)
                return
            async with self._client.start_session() as session, await session.start_transaction():
                await self._apply(writes, session=session)

    async def _apply(self, writes: Sequence[DocumentWrite], session: AsyncClientSession | None) -> None:
        for write in writes:
            try:
                match write:
                    case UpsertDocument():
                        await self._upsert(write, session)
                    case DeleteDocument():
                        await self._delete(write, session)
            except MongoDuplicateKeyError as e:
                key = e.details.get("keyValue") if e.details else None
                raise DuplicateKeyError(write.collection, details={"key": key}) from e

    async def _upsert(self, write: UpsertDocument, session: AsyncClientSession | None) -> None:
        collection = self._collection(write.collection)
        document = {key: value for key, value in write.document.items() if key != ID_FIELD}
        for field in write.reference_fields:
            if field in document:
                document[field] = to_object_id(document[field])

        if write.document.get(ID_FIELD) is None:
            document[VERSION_FIELD] = 1
            result = await collection.insert_one(document, session=session)
            write.document[ID_FIELD] = str(result.inserted_id)
            return

        document_id = to_object_id(str(write.document[ID_FIELD]))
        current_version = await self.get_version(write.collection, str(write.document[ID_FIELD]))
        if write.expected_version is not None and current_version != write.expected_version:
            raise ConcurrencyConflictError(
                write.collection, str(write.document[ID_FIELD]), write.expected_version, current_version
            )

        document[VERSION_FIELD] = (current_version or 0) + 1
        selector: dict[str, Any] = {MONGO_ID_FIELD: document_id}
        if write.expected_version is not None:
            selector[VERSION_FIELD] = write.expected_version
        result = await collection.replace_one(
            selector, document, upsert=write.expected_version is None, session=session
        )
        if write.expected_version is not None and result.matched_count == 0:
            actual = await self.get_version(write.collection, str(write.document[ID_FIELD]))
            raise ConcurrencyConflictError(
                write.collection, str(write.document[ID_FIELD]), write.expected_version, actual
            )

    async def _delete(self, write: DeleteDocument, session: AsyncClientSession | None) -> None:
        selector: dict[str, Any] = {MONGO_ID_FIELD: to_object_id(str(write.document_id))}
        if write.expected_version is not None:
            selector[VERSION_FIELD] = write.expected_version
        result = await self._collection(write.collection).delete_one(selector, session=session)
        if write.expected_version is not None and result.deleted_count == 0:
            actual = await self.get_version(write.collection, str(write.document_id))
            raise ConcurrencyConflictError(write.collection, str(write.document_id), write.expected_version, actual)

    async def get_version(self, collection: str, document_id: str) -> int | None:
        document = await self._collection(collection).find_one(
            {MONGO_ID_FIELD: to_object_id(str(document_id))}, projection={VERSION_FIELD: 1}
        )
        return document.get(VERSION_FIELD) if document else None

    async def close(self) -> None:
        await self._client.close()
        logger.info("MongoDB client closed")


__all__ = [
    "MongoDocumentStore",
    "from_mongo",
    "to_mongo_filter",
    "to_mongo_update",
    "to_object_id",
]
