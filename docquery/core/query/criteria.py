"""Query criteria aggregate.

QueryCriteria bundles everything the engine needs to plan a query:
filters, sort, pagination window, projection, priming, read-only flag,
distinct / sum targets and the total-count toggle.

A criteria is built fresh per logical query and must not be mutated once
handed to the engine.
"""

from __future__ import annotations

from collections.abc import Iterable
from enum import StrEnum
from typing import Any

from docquery.core.exceptions import DomainInvariantError
from docquery.core.query.filters import FiltersDescriptor
from docquery.core.query.pagination import (
    CursorSubsetDescriptor,
    OffsetAndLimitDescriptor,
    Pagination,
)
from docquery.core.query.sorting import SortingDescriptor
from docquery.core.query.update import UpdateDescriptor


class QueryStrategy(StrEnum):
    """Pagination strategy selected by the criteria."""

    OFFSET_LIMIT = "offset_limit"
    CURSOR = "cursor"


class QueryCriteria:
    """Fluent description of a query.

    Holds at most one pagination descriptor: setting an offset descriptor
    while a cursor descriptor is present (or the reverse) raises
    DomainInvariantError immediately.

    Example:
        criteria = (
            QueryCriteria()
            .set_filters_descriptor(FiltersDescriptor().equals("status", "published"))
            .set_sorting_descriptor(SortingDescriptor("date", SortDirection.ASC))
            .set_cursor_subset_descriptor(CursorSubsetDescriptor(first=10))
            .set_read_only()
        )
    """

    __slots__ = (
        "_distinct_field",
        "_fields_to_exclude",
        "_fields_to_prime",
        "_fields_to_select",
        "_filters",
        "_pagination",
        "_read_only",
        "_sorting",
        "_sum_field",
        "_total_count",
        "_update",
    )

    def __init__(self) -> None:
        self._pagination: Pagination | None = None
        self._sorting = SortingDescriptor()
        self._filters: FiltersDescriptor | None = None
        self._update: UpdateDescriptor | None = None
        self._fields_to_prime: list[str] = []
        self._fields_to_select: list[str] = []
        self._fields_to_exclude: list[str] = []
        self._read_only = False
        self._distinct_field: str | None = None
        self._sum_field: str | None = None
        self._total_count = True

    # ──────────────────────────────────────────────────────────────
    # Pagination
    # ──────────────────────────────────────────────────────────────

    @property
    def pagination(self) -> Pagination | None:
        return self._pagination

    @property
    def cursor_subset_descriptor(self) -> CursorSubsetDescriptor | None:
        return self._pagination if isinstance(self._pagination, CursorSubsetDescriptor) else None

    @property
    def offset_and_limit_descriptor(self) -> OffsetAndLimitDescriptor | None:
        return self._pagination if isinstance(self._pagination, OffsetAndLimitDescriptor) else None

    def set_cursor_subset_descriptor(
        self,
        descriptor: CursorSubsetDescriptor,
        *,
        condition: bool = True,
    ) -> QueryCriteria:
        """Select cursor pagination.

        Raises:
            DomainInvariantError: If an offset descriptor is already set
        """
        if condition:
            if isinstance(self._pagination, OffsetAndLimitDescriptor):
                msg = "Cannot set a cursor subset descriptor when an offset and limit descriptor is set"
                raise DomainInvariantError(msg)
            self._pagination = descriptor
        return self

    def set_offset_and_limit_descriptor(
        self,
        descriptor: OffsetAndLimitDescriptor,
        *,
        condition: bool = True,
    ) -> QueryCriteria:
        """Select offset / limit pagination.

        Raises:
            DomainInvariantError: If a cursor descriptor is already set
        """
        if condition:
            if isinstance(self._pagination, CursorSubsetDescriptor):
                msg = "Cannot set an offset and limit descriptor when a cursor subset descriptor is set"
                raise DomainInvariantError(msg)
            self._pagination = descriptor
        return self

    def get_query_strategy(self) -> QueryStrategy:
        if isinstance(self._pagination, CursorSubsetDescriptor):
            return QueryStrategy.CURSOR
        return QueryStrategy.OFFSET_LIMIT

    # ──────────────────────────────────────────────────────────────
    # Sort, filters, update
    # ──────────────────────────────────────────────────────────────

    @property
    def sorting_descriptor(self) -> SortingDescriptor:
        return self._sorting

    def set_sorting_descriptor(self, descriptor: SortingDescriptor, *, condition: bool = True) -> QueryCriteria:
        if condition:
            self._sorting = descriptor
        return self

    @property
    def filters_descriptor(self) -> FiltersDescriptor | None:
        return self._filters

    def set_filters_descriptor(
        self,
        descriptor: FiltersDescriptor | None,
        *,
        condition: bool = True,
    ) -> QueryCriteria:
        if condition:
            self._filters = descriptor
        return self

    @property
    def update_descriptor(self) -> UpdateDescriptor | None:
        return self._update

    def set_update_descriptor(self, descriptor: UpdateDescriptor | None) -> QueryCriteria:
        self._update = descriptor
        return self

    # ──────────────────────────────────────────────────────────────
    # Projection and priming
    # ──────────────────────────────────────────────────────────────

    @property
    def fields_to_select(self) -> list[str]:
        return list(self._fields_to_select)

    def set_fields_to_select(self, fields: Iterable[str]) -> QueryCriteria:
        self._fields_to_select = list(fields)
        return self

    def add_field_to_select(self, field: str) -> QueryCriteria:
        self._fields_to_select.append(field)
        return self

    @property
    def fields_to_exclude(self) -> list[str]:
        return list(self._fields_to_exclude)

    def set_fields_to_exclude(self, fields: Iterable[str]) -> QueryCriteria:
        self._fields_to_exclude = list(fields)
        return self

    def add_field_to_exclude(self, field: str) -> QueryCriteria:
        self._fields_to_exclude.append(field)
        return self

    @property
    def fields_to_prime(self) -> list[str]:
        """Reference fields whose documents are loaded eagerly."""
        return list(self._fields_to_prime)

    def set_fields_to_prime(self, fields: Iterable[str]) -> QueryCriteria:
        self._fields_to_prime = list(fields)
        return self

    # ──────────────────────────────────────────────────────────────
    # Flags and aggregate targets
    # ──────────────────────────────────────────────────────────────

    @property
    def read_only(self) -> bool:
        return self._read_only

    def set_read_only(self, read_only: bool = True) -> QueryCriteria:
        """Mark results as not meant for modification (cacheable)."""
        self._read_only = read_only
        return self

    @property
    def distinct_field(self) -> str | None:
        return self._distinct_field

    def set_distinct_field(self, field: str | None) -> QueryCriteria:
        self._distinct_field = field
        return self

    @property
    def sum_field(self) -> str | None:
        return self._sum_field

    def set_sum_field(self, field: str | None) -> QueryCriteria:
        self._sum_field = field
        return self

    @property
    def total_count(self) -> bool:
        return self._total_count

    def set_total_count(self, total_count: bool) -> QueryCriteria:
        self._total_count = total_count
        return self

    # ──────────────────────────────────────────────────────────────
    # Serialization
    # ──────────────────────────────────────────────────────────────

    def to_dict(self) -> dict[str, Any]:
        """Plain representation used to build cache keys.

        Structurally equal criteria produce equal dictionaries.
        """
        pagination: dict[str, Any] | None = None
        if self._pagination is not None:
            pagination = {"strategy": self.get_query_strategy().value, **self._pagination.to_dict()}
        return {
            "pagination": pagination,
            "sorting": self._sorting.to_dict(),
            "filters": self._filters.get_filters_as_list() if self._filters else None,
            "update": self._update.get_update_operations_as_list() if self._update else None,
            "fields_to_prime": self._fields_to_prime,
            "fields_to_select": self._fields_to_select,
            "fields_to_exclude": self._fields_to_exclude,
            "read_only": self._read_only,
            "distinct_field": self._distinct_field,
            "sum_field": self._sum_field,
            "total_count": self._total_count,
        }

    def __repr__(self) -> str:
        return f"QueryCriteria({self.to_dict()!r})"


__all__ = ["QueryCriteria", "QueryStrategy"]
