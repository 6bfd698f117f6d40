"""Query engine.

QueryEngine turns a document type name plus a QueryCriteria into store
queries, consults the query cache, and annotates paginated results with
navigation metadata.

Two pagination strategies are supported:

Offset / limit::

    filters -> sort(sort_by) -> skip(offset) -> limit(limit)
    has_previous_page = offset > 0
    has_next_page     = count(skip=offset + limit, limit=1) > 0

Cursor (keyset over ``(sort_by, id)``)::

    Forward pagination (first / after), sorted by date ASC:

        1  2 [ 3  4  5 ] 6  7  8  9
             |
        after cursor

    Backward pagination (last / before): sort inverted, take ``last``,
    then reverse so the page is always in the declared order:

        1  2 [ 3  4  5 ] 6  7  8  9
                         |
                    before cursor

Existence of previous / next pages is answered by count probes rather
than by fetching one extra document. Probes and the total count are
independent of the page query and run concurrently.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, TypeVar

from opentelemetry import trace

from docquery.core.engine.joins import FilterCompiler
from docquery.core.exceptions import (
    ConcurrencyConflictError,
    DomainInvariantError,
    InvalidInputError,
    QueryExecutionError,
)
from docquery.core.query.criteria import QueryCriteria, QueryStrategy
from docquery.core.query.filters import FilterOperator
from docquery.core.query.pagination import CursorSubsetDescriptor
from docquery.core.query.result import SubsetQueryResult
from docquery.core.query.sorting import SortDirection
from docquery.infra.cache import InMemoryTagAwareCache, QueryCache, QueryKind, create_query_cache
from docquery.infra.logging import get_lazy_logger
from docquery.infra.store.base import (
    ID_FIELD,
    AndExpression,
    Expression,
    FieldCondition,
    OrExpression,
    PrimeReference,
    StoreQuery,
)
from docquery.infra.store.factory import create_document_store

if TYPE_CHECKING:
    from opentelemetry.trace import Span

    from docquery.core.engine.registry import DocumentRegistry, DocumentType
    from docquery.core.query.filters import FiltersDescriptor
    from docquery.core.query.sorting import SortingDescriptor
    from docquery.core.settings.cache import CacheSettings
    from docquery.core.settings.store import StoreSettings
    from docquery.infra.store.base import DocumentStore

logger = logging.getLogger(__name__)
lazy_logger = get_lazy_logger(__name__)
tracer = trace.get_tracer(__name__)

T = TypeVar("T")


async def _resolved(value: T) -> T:
    return value


# ──────────────────────────────────────────────────────────────
# Sort, slice and boundary builders
# ──────────────────────────────────────────────────────────────


def offset_sort_and_slice(query: StoreQuery, criteria: QueryCriteria) -> StoreQuery:
    """Apply the declared sort and the offset / limit window."""
    sorting = criteria.sorting_descriptor
    descriptor = criteria.offset_and_limit_descriptor
    return query.replace(
        sort=((sorting.sort_by, sorting.sort_direction),),
        skip=(descriptor.offset or 0) if descriptor else 0,
        limit=descriptor.limit if descriptor else None,
    )


def cursor_sort_and_slice(
    query: StoreQuery,
    sorting: SortingDescriptor,
    subset: CursorSubsetDescriptor,
    skip: int = 0,
) -> StoreQuery:
    """Sort by ``(sort_by, id)`` in traversal order and take the window.

    The sort holds a single key when sorting by id.
    """
    forward = subset.is_paginating_forward
    direction = sorting.sort_direction if forward else sorting.sort_direction.inverted()
    sort: tuple[tuple[str, SortDirection], ...] = ((sorting.sort_by, direction),)
    if sorting.sort_by != ID_FIELD:
        sort += ((ID_FIELD, direction),)
    return query.replace(sort=sort, skip=skip, limit=subset.first if forward else subset.last)


def cursor_boundary(sorting: SortingDescriptor, subset: CursorSubsetDescriptor) -> Expression | None:
    """Keyset predicate strictly beyond ``after`` (forward) or before ``before``."""
    ascending = sorting.sort_direction is SortDirection.ASC
    if subset.is_paginating_forward and subset.after is not None:
        cursor = subset.after
        operator = FilterOperator.GT if ascending else FilterOperator.LT
    elif subset.before is not None:
        cursor = subset.before
        operator = FilterOperator.LT if ascending else FilterOperator.GT
    else:
        return None

    return OrExpression(
        (
            FieldCondition(sorting.sort_by, operator, cursor.cursor_value),
            AndExpression(
                (
                    FieldCondition(sorting.sort_by, FilterOperator.EQUALS, cursor.cursor_value),
                    FieldCondition(ID_FIELD, operator, cursor.id),
                )
            ),
        )
    )


def _sum_values(documents: list[dict[str, Any]], path: str) -> int | float:
    segments = path.split(".")
    total: int | float = 0
    for document in documents:
        value: Any = document
        for segment in segments:
            value = value.get(segment) if isinstance(value, Mapping) else None
            if isinstance(value, list):
                msg = "Cannot sum on array fields"
                raise DomainInvariantError(msg, details={"field": path})
        if hasattr(value, "to_decimal"):
            value = float(value.to_decimal())
        if isinstance(value, bool) or not isinstance(value, int | float):
            msg = "Cannot sum fields because one or more values are not numbers"
            raise DomainInvariantError(msg, details={"field": path})
        total += value
    return total


class QueryEngine:
    """Execute QueryCriteria against a document store through the query cache.

    Documents are returned hydrated by the document type's factory; the
    cache only ever holds raw store results. Queries marked read-only are
    served from the cache, other document queries always hit the store.
    Aggregates (count, distinct, sum) and page probes are always cacheable.

    Example:
        engine = QueryEngine(MemoryDocumentStore(), registry)

        criteria = (
            QueryCriteria()
            .set_sorting_descriptor(SortingDescriptor("date", SortDirection.ASC))
            .set_cursor_subset_descriptor(CursorSubsetDescriptor(first=3))
            .set_read_only()
        )
        page = await engine.get_subset("Event", criteria)
        print(page.has_next_page, page.documents_total_count)
    """

    def __init__(
        self,
        store: DocumentStore,
        registry: DocumentRegistry,
        cache: QueryCache | None = None,
        *,
        use_transactions: bool = False,
    ) -> None:
        self._store = store
        self._registry = registry
        self._cache = cache if cache is not None else QueryCache(InMemoryTagAwareCache())
        self._use_transactions = use_transactions
        self._compiler = FilterCompiler(registry, store)

    @classmethod
    async def from_settings(
        cls,
        registry: DocumentRegistry,
        store_settings: StoreSettings,
        cache_settings: CacheSettings,
    ) -> QueryEngine:
        """Build an engine with the store and cache named in settings."""
        store = create_document_store(store_settings)
        cache = await create_query_cache(cache_settings)
        logger.info(
            "Query engine created",
            extra={
                "store_backend": store_settings.backend,
                "cache_backend": cache_settings.backend,
                "cache_enabled": cache_settings.enabled,
            },
        )
        return cls(store, registry, cache, use_transactions=store_settings.use_transactions)

    @property
    def store(self) -> DocumentStore:
        return self._store

    @property
    def registry(self) -> DocumentRegistry:
        return self._registry

    @property
    def cache(self) -> QueryCache:
        return self._cache

    @property
    def use_transactions(self) -> bool:
        return self._use_transactions

    async def close(self) -> None:
        await self._store.close()
        await self._cache.close()

    # ──────────────────────────────────────────────────────────────
    # Reads
    # ──────────────────────────────────────────────────────────────

    async def get_subset(self, document_type: str, criteria: QueryCriteria) -> SubsetQueryResult[Any]:
        """Return one page of documents with navigation metadata.

        The pagination strategy is selected by the criteria.

        Raises:
            DomainInvariantError: If the offset strategy is selected without
                an OffsetAndLimitDescriptor
            QueryExecutionError: If filters cannot be applied
        """
        doc_type = self._registry.get(document_type)
        strategy = criteria.get_query_strategy()
        with self._span("get_subset", doc_type, strategy=strategy.value):
            if strategy is QueryStrategy.CURSOR:
                return await self._cursor_get_subset(doc_type, criteria)
            return await self._offset_get_subset(doc_type, criteria)

    async def find(self, document_type: str, criteria: QueryCriteria) -> list[Any]:
        """Return every document matching the criteria, sorted and sliced.

        Under the cursor strategy only the sort and window size apply, the
        cursors themselves are ignored.
        """
        doc_type = self._registry.get(document_type)
        with self._span("find", doc_type):

            async def query() -> list[dict[str, Any]]:
                store_query = await self._documents_query(doc_type, criteria)
                if criteria.get_query_strategy() is QueryStrategy.CURSOR:
                    store_query = cursor_sort_and_slice(
                        store_query, criteria.sorting_descriptor, self._cursor_descriptor(criteria)
                    )
                else:
                    store_query = offset_sort_and_slice(store_query, criteria)
                return await self._store.find(store_query)

            return await self._cache.get(
                doc_type.name, criteria, QueryKind.FIND, criteria.read_only, query, doc_type.hydrate_many
            )

    async def get_single_result(self, document_type: str, criteria: QueryCriteria) -> Any | None:
        """Return the first document matching the criteria, or None."""
        doc_type = self._registry.get(document_type)
        with self._span("get_single_result", doc_type):

            async def query() -> dict[str, Any] | None:
                store_query = offset_sort_and_slice(await self._documents_query(doc_type, criteria), criteria)
                documents = await self._store.find(store_query.replace(limit=1))
                return documents[0] if documents else None

            return await self._cache.get(
                doc_type.name,
                criteria,
                QueryKind.GET_SINGLE_RESULT,
                criteria.read_only,
                query,
                doc_type.hydrate,
            )

    async def count(self, document_type: str, criteria: QueryCriteria) -> int:
        """Count the documents matching the filters."""
        doc_type = self._registry.get(document_type)
        with self._span("count", doc_type):

            async def query() -> int:
                return await self._store.count(await self._filtered_query(doc_type, criteria.filters_descriptor))

            return await self._cache.get(doc_type.name, criteria, QueryKind.COUNT, True, query)

    async def distinct(self, document_type: str, criteria: QueryCriteria) -> list[Any]:
        """Return the distinct values of ``criteria.distinct_field``.

        Raises:
            InvalidInputError: If no distinct field is set
        """
        doc_type = self._registry.get(document_type)
        field = criteria.distinct_field
        if field is None:
            msg = "Cannot build distinct query because distinct field is not set"
            raise InvalidInputError(msg, field="distinct_field")

        with self._span("distinct", doc_type):

            async def query() -> list[Any]:
                return await self._store.distinct(
                    await self._filtered_query(doc_type, criteria.filters_descriptor), field
                )

            return await self._cache.get(doc_type.name, criteria, QueryKind.DISTINCT, True, query)

    async def sum(self, document_type: str, criteria: QueryCriteria) -> int | float:
        """Sum ``criteria.sum_field`` over the sorted and sliced matches.

        Raises:
            InvalidInputError: If no sum field is set
            DomainInvariantError: If a value is an array or not a number
        """
        doc_type = self._registry.get(document_type)
        field = criteria.sum_field
        if field is None:
            msg = "Cannot build sum query because sum field is not set"
            raise InvalidInputError(msg, field="sum_field")

        with self._span("sum", doc_type):

            async def query() -> int | float:
                store_query = await self._filtered_query(doc_type, criteria.filters_descriptor)
                if criteria.get_query_strategy() is QueryStrategy.CURSOR:
                    store_query = cursor_sort_and_slice(
                        store_query, criteria.sorting_descriptor, self._cursor_descriptor(criteria)
                    )
                else:
                    store_query = offset_sort_and_slice(store_query, criteria)
                documents = await self._store.find(store_query.replace(select=(field,), read_only=True))
                return _sum_values(documents, field)

            return await self._cache.get(doc_type.name, criteria, QueryKind.SUM, True, query)

    # ──────────────────────────────────────────────────────────────
    # Writes bypassing the unit of work
    # ──────────────────────────────────────────────────────────────

    async def update_one_now(self, document_type: str, criteria: QueryCriteria) -> int:
        """Apply the criteria's update operations to the first match.

        Returns:
            Number of modified documents
        """
        return await self._update_now(document_type, criteria, multi=False)

    async def update_many_now(self, document_type: str, criteria: QueryCriteria) -> int:
        """Apply the criteria's update operations to every match."""
        return await self._update_now(document_type, criteria, multi=True)

    async def _update_now(self, document_type: str, criteria: QueryCriteria, *, multi: bool) -> int:
        doc_type = self._registry.get(document_type)
        update = criteria.update_descriptor
        if update is None or len(update) == 0:
            msg = "No UpdateDescriptor was provided to the update query."
            raise InvalidInputError(msg, field="update_descriptor")

        with self._span("update_many_now" if multi else "update_one_now", doc_type):
            query = await self._filtered_query(doc_type, criteria.filters_descriptor)
            try:
                modified = await self._store.update(query, update.operations, multi=multi)
            finally:
                # A partial write still leaves cached results stale
                await self._cache.invalidate(doc_type.name)
            logger.info(
                "Documents updated",
                extra={"document_type": doc_type.name, "multi": multi, "modified": modified},
            )
            return modified

    async def delete_now(self, document_type: str, criteria: QueryCriteria) -> int:
        """Delete every match.

        Returns:
            Number of deleted documents
        """
        doc_type = self._registry.get(document_type)
        with self._span("delete_now", doc_type):
            query = await self._filtered_query(doc_type, criteria.filters_descriptor)
            try:
                deleted = await self._store.delete(query)
            finally:
                await self._cache.invalidate(doc_type.name)
            logger.info("Documents deleted", extra={"document_type": doc_type.name, "deleted": deleted})
            return deleted

    async def lock(self, document_type: str, document_id: str, expected_version: int) -> None:
        """Check a document's version before acting on it.

        Raises:
            ConcurrencyConflictError: If the stored version differs
        """
        doc_type = self._registry.get(document_type)
        actual = await self._store.get_version(doc_type.collection, str(document_id))
        if actual != expected_version:
            raise ConcurrencyConflictError(doc_type.name, str(document_id), expected_version, actual)

    # ──────────────────────────────────────────────────────────────
    # Offset strategy
    # ──────────────────────────────────────────────────────────────

    async def _offset_get_subset(self, doc_type: DocumentType, criteria: QueryCriteria) -> SubsetQueryResult[Any]:
        descriptor = criteria.offset_and_limit_descriptor
        if descriptor is None:
            msg = "The OffsetAndLimitDescriptor is not set."
            raise DomainInvariantError(msg, details={"document_type": doc_type.name})

        documents, total_count, has_next_page = await asyncio.gather(
            self._offset_documents(doc_type, criteria),
            self._total_count(doc_type, criteria) if criteria.total_count else _resolved(None),
            self._offset_has_next_page(doc_type, criteria),
        )
        return SubsetQueryResult(
            documents=tuple(documents),
            documents_total_count=total_count,
            has_previous_page=(descriptor.offset or 0) > 0,
            has_next_page=has_next_page,
            query_criteria=criteria,
        )

    async def _offset_documents(self, doc_type: DocumentType, criteria: QueryCriteria) -> list[Any]:
        async def query() -> list[dict[str, Any]]:
            store_query = offset_sort_and_slice(await self._documents_query(doc_type, criteria), criteria)
            return await self._store.find(store_query)

        return await self._cache.get(
            doc_type.name, criteria, QueryKind.GET_SUBSET, criteria.read_only, query, doc_type.hydrate_many
        )

    async def _offset_has_next_page(self, doc_type: DocumentType, criteria: QueryCriteria) -> bool:
        descriptor = criteria.offset_and_limit_descriptor
        if descriptor is None or descriptor.limit is None:
            # Unbounded window: nothing lies beyond it
            return False

        async def probe() -> bool:
            store_query = await self._filtered_query(doc_type, criteria.filters_descriptor)
            sorting = criteria.sorting_descriptor
            store_query = store_query.replace(
                sort=((sorting.sort_by, sorting.sort_direction),),
                skip=(descriptor.offset or 0) + descriptor.limit,
                limit=1,
            )
            return await self._store.count(store_query) > 0

        return await self._cache.get(doc_type.name, criteria, QueryKind.HAS_NEXT_PAGE, True, probe)

    # ──────────────────────────────────────────────────────────────
    # Cursor strategy
    # ──────────────────────────────────────────────────────────────

    async def _cursor_get_subset(self, doc_type: DocumentType, criteria: QueryCriteria) -> SubsetQueryResult[Any]:
        documents, total_count, has_previous_page, has_next_page = await asyncio.gather(
            self._cursor_documents(doc_type, criteria),
            self._total_count(doc_type, criteria) if criteria.total_count else _resolved(None),
            self._cursor_has_previous_page(doc_type, criteria),
            self._cursor_has_next_page(doc_type, criteria),
        )
        return SubsetQueryResult(
            documents=tuple(documents),
            documents_total_count=total_count,
            has_previous_page=has_previous_page,
            has_next_page=has_next_page,
            query_criteria=criteria,
        )

    async def _cursor_documents(self, doc_type: DocumentType, criteria: QueryCriteria) -> list[Any]:
        subset = self._cursor_descriptor(criteria)
        sorting = criteria.sorting_descriptor

        async def query() -> list[dict[str, Any]]:
            store_query = await self._documents_query(doc_type, criteria)
            store_query = cursor_sort_and_slice(self._with_boundary(store_query, sorting, subset), sorting, subset)
            lazy_logger.debug(lambda: f"Cursor page query for {doc_type.name}: {store_query.to_dict()}")
            documents = await self._store.find(store_query)
            return documents if subset.is_paginating_forward else documents[::-1]

        return await self._cache.get(
            doc_type.name, criteria, QueryKind.GET_SUBSET, criteria.read_only, query, doc_type.hydrate_many
        )

    async def _cursor_has_previous_page(self, doc_type: DocumentType, criteria: QueryCriteria) -> bool:
        subset = self._cursor_descriptor(criteria)
        if subset.before is None and subset.after is None:
            # First (or last) page of the whole set
            return False

        # Reverse the base query: swap the cursors and look one document
        # past the start of the page in the opposite direction
        mirror = CursorSubsetDescriptor(
            first=1 if subset.last is not None else None,
            last=1 if subset.first is not None else None,
            after=subset.before,
            before=subset.after,
        )

        async def probe() -> bool:
            return await self._cursor_probe(doc_type, criteria, mirror) > 0

        return await self._cache.get(doc_type.name, criteria, QueryKind.HAS_PREVIOUS_PAGE, True, probe)

    async def _cursor_has_next_page(self, doc_type: DocumentType, criteria: QueryCriteria) -> bool:
        subset = self._cursor_descriptor(criteria)
        window = subset.first if subset.first is not None else subset.last
        if window is None:
            # Unbounded window: nothing lies beyond it
            return False

        probe_descriptor = CursorSubsetDescriptor(
            first=1 if subset.first is not None else None,
            last=1 if subset.last is not None else None,
            after=subset.after,
            before=subset.before,
        )

        async def probe() -> bool:
            # Skip the documents already returned by the page
            return await self._cursor_probe(doc_type, criteria, probe_descriptor, skip=window) > 0

        return await self._cache.get(doc_type.name, criteria, QueryKind.HAS_NEXT_PAGE, True, probe)

    async def _cursor_probe(
        self,
        doc_type: DocumentType,
        criteria: QueryCriteria,
        subset: CursorSubsetDescriptor,
        skip: int = 0,
    ) -> int:
        sorting = criteria.sorting_descriptor
        store_query = await self._filtered_query(doc_type, criteria.filters_descriptor)
        store_query = cursor_sort_and_slice(self._with_boundary(store_query, sorting, subset), sorting, subset, skip)
        return await self._store.count(store_query)

    @staticmethod
    def _with_boundary(
        query: StoreQuery,
        sorting: SortingDescriptor,
        subset: CursorSubsetDescriptor,
    ) -> StoreQuery:
        boundary = cursor_boundary(sorting, subset)
        if boundary is None:
            return query
        return query.replace(expressions=(*query.expressions, boundary))

    @staticmethod
    def _cursor_descriptor(criteria: QueryCriteria) -> CursorSubsetDescriptor:
        subset = criteria.cursor_subset_descriptor
        if subset is None:
            msg = "The CursorSubsetDescriptor is not set."
            raise DomainInvariantError(msg)
        return subset

    # ──────────────────────────────────────────────────────────────
    # Query building
    # ──────────────────────────────────────────────────────────────

    async def _total_count(self, doc_type: DocumentType, criteria: QueryCriteria) -> int:
        return await self._store.count(await self._filtered_query(doc_type, criteria.filters_descriptor))

    async def _filtered_query(self, doc_type: DocumentType, filters: FiltersDescriptor | None) -> StoreQuery:
        try:
            expressions = await self._compiler.compile(doc_type, filters)
        except Exception as e:
            msg = "Cannot apply filters to query."
            raise QueryExecutionError(msg, details={"document_type": doc_type.name, "error": str(e)}) from e
        return StoreQuery(collection=doc_type.collection, expressions=expressions)

    async def _documents_query(self, doc_type: DocumentType, criteria: QueryCriteria) -> StoreQuery:
        """Filtered query with projection, priming and the read-only flag."""
        select: tuple[str, ...] = ()
        exclude: tuple[str, ...] = ()
        if criteria.distinct_field is None:
            if criteria.fields_to_select:
                select = tuple(criteria.fields_to_select)
            elif criteria.fields_to_exclude:
                exclude = tuple(criteria.fields_to_exclude)

        prime: tuple[PrimeReference, ...] = ()
        if not criteria.read_only:
            prime = tuple(self._prime_reference(doc_type, field) for field in criteria.fields_to_prime)

        query = await self._filtered_query(doc_type, criteria.filters_descriptor)
        return query.replace(select=select, exclude=exclude, prime=prime, read_only=criteria.read_only)

    def _prime_reference(self, doc_type: DocumentType, field: str) -> PrimeReference:
        if not doc_type.is_reference_field(field):
            msg = f"{field} is not a reference field of {doc_type.name}"
            raise InvalidInputError(msg, field="fields_to_prime")
        return PrimeReference(field, self._registry.get(doc_type.references[field]).collection)

    @contextmanager
    def _span(self, operation: str, doc_type: DocumentType, **attributes: Any) -> Iterator[Span]:
        with tracer.start_as_current_span(f"docquery.{operation}") as span:
            span.set_attribute("docquery.document_type", doc_type.name)
            span.set_attribute("docquery.collection", doc_type.collection)
            for key, value in attributes.items():
                span.set_attribute(f"docquery.{key}", value)
            yield span


__all__ = [
    "QueryEngine",
    "cursor_boundary",
    "cursor_sort_and_slice",
    "offset_sort_and_slice",
]
