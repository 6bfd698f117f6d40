"""Build query descriptors from plain request arguments.

Arguments arrive as a mapping, typically the decoded body or query string
of an API request:

    {
        "filters": [
            {"field": "date", "operator": "gte", "value": "2025-01-01T00:00:00", "value_type": "DATETIME"},
            {"field": "country", "operator": "in", "value": "IT,FR", "value_type": "STRING_LIST"},
        ],
        "sort": {"sort_by": "date", "sort_direction": "asc"},
        "first": 20,
        "after": "<cursor>",
    }

Filter values are strings parsed according to ``value_type``; values that
already have a native type are passed through unchanged.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from datetime import datetime
from enum import StrEnum
from typing import Any

from docquery.core.exceptions import InvalidInputError
from docquery.core.pagination.cursor import PaginationCursorProvider
from docquery.core.query.criteria import QueryCriteria
from docquery.core.query.filters import FiltersDescriptor
from docquery.core.query.pagination import CursorSubsetDescriptor, OffsetAndLimitDescriptor
from docquery.core.query.sorting import SortDirection, SortingDescriptor
from docquery.core.settings import PaginationSettings, get_pagination_settings

Arguments = Mapping[str, Any]


class ValueType(StrEnum):
    """Declared type of a filter argument value."""

    STRING = "STRING"
    BOOL = "BOOL"
    INT = "INT"
    FLOAT = "FLOAT"
    DATETIME = "DATETIME"
    REFERENCE = "REFERENCE"
    STRING_LIST = "STRING_LIST"
    INT_LIST = "INT_LIST"
    FLOAT_LIST = "FLOAT_LIST"
    BOOL_LIST = "BOOL_LIST"
    DATETIME_LIST = "DATETIME_LIST"
    REFERENCE_LIST = "REFERENCE_LIST"
    STRING_LIST_NULLABLE = "STRING_LIST_NULLABLE"
    INT_LIST_NULLABLE = "INT_LIST_NULLABLE"
    FLOAT_LIST_NULLABLE = "FLOAT_LIST_NULLABLE"
    BOOL_LIST_NULLABLE = "BOOL_LIST_NULLABLE"
    DATETIME_LIST_NULLABLE = "DATETIME_LIST_NULLABLE"
    POLYGON = "POLYGON"
    CIRCLE = "CIRCLE"


# Filter argument operator -> FiltersDescriptor builder method
FILTER_OPERATORS: dict[str, str] = {
    "equals": "equals",
    "not_equal": "not_equal",
    "gt": "gt",
    "gte": "gte",
    "lt": "lt",
    "lte": "lte",
    "in": "in_",
    "not_in": "not_in",
    "all": "all",
    "contains": "contains",
    "starts_with": "starts_with",
    "equals_case_insensitive": "equals_case_insensitive",
    "equals_regex": "equals_regex",
    "text": "text",
    "size": "size",
    "exists": "exists",
    "references": "references",
    "includes_reference_to": "includes_reference_to",
    "geo_within_polygon": "geo_within_polygon",
    "geo_within_circle": "geo_within_circle",
}

_TRUE_VALUES = frozenset({"true", "1"})


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in _TRUE_VALUES


def _parse_datetime(value: str) -> datetime:
    return datetime.fromisoformat(value.strip())


def _list_of(parse: Callable[[str], Any], *, nullable: bool = False) -> Callable[[str], list[Any]]:
    def parse_list(value: str) -> list[Any]:
        values = [parse(item) for item in value.split(",")]
        if nullable:
            values.append(None)
        return values

    return parse_list


def _parse_point(value: str) -> list[float]:
    return [float(coordinate) for coordinate in value.split(",")]


def _parse_polygon(value: str) -> list[list[float]]:
    return [_parse_point(point) for point in value.split("|")]


def _parse_circle(value: str) -> list[float | int]:
    center, radius = value.split("|")
    longitude, latitude = _parse_point(center)
    return [longitude, latitude, int(radius)]


_PARSERS: dict[ValueType, Callable[[str], Any]] = {
    ValueType.STRING: str,
    ValueType.BOOL: _parse_bool,
    ValueType.INT: int,
    ValueType.FLOAT: float,
    ValueType.DATETIME: _parse_datetime,
    ValueType.REFERENCE: str.strip,
    ValueType.STRING_LIST: _list_of(str),
    ValueType.INT_LIST: _list_of(int),
    ValueType.FLOAT_LIST: _list_of(float),
    ValueType.BOOL_LIST: _list_of(_parse_bool),
    ValueType.DATETIME_LIST: _list_of(_parse_datetime),
    ValueType.REFERENCE_LIST: _list_of(str.strip),
    ValueType.STRING_LIST_NULLABLE: _list_of(str, nullable=True),
    ValueType.INT_LIST_NULLABLE: _list_of(int, nullable=True),
    ValueType.FLOAT_LIST_NULLABLE: _list_of(float, nullable=True),
    ValueType.BOOL_LIST_NULLABLE: _list_of(_parse_bool, nullable=True),
    ValueType.DATETIME_LIST_NULLABLE: _list_of(_parse_datetime, nullable=True),
    ValueType.POLYGON: _parse_polygon,
    ValueType.CIRCLE: _parse_circle,
}


class QueryArgumentsProvider:
    """Translate request arguments into query descriptors.

    Window sizes (``first``, ``last``, ``limit``) are clamped to
    ``max_page_size``; an offset query without ``limit`` uses
    ``default_page_size``.

    Args:
        pagination_settings: Page size bounds; defaults to the cached
            PaginationSettings

    Example:
        provider = QueryArgumentsProvider()
        criteria = provider.to_relay_query_criteria({"first": 10, "sort": {"sort_by": "date"}})
        result = await engine.get_subset("Event", criteria)
    """

    def __init__(self, pagination_settings: PaginationSettings | None = None) -> None:
        self._settings = pagination_settings or get_pagination_settings()

    # ──────────────────────────────────────────────────────────────
    # Criteria
    # ──────────────────────────────────────────────────────────────

    def to_relay_query_criteria(self, args: Arguments, *, total_count_requested: bool = True) -> QueryCriteria:
        """Read-only cursor-strategy criteria for a Relay connection query.

        Args:
            args: Request arguments
            total_count_requested: Whether the caller selected the total count

        Raises:
            InvalidInputError: If neither ``first`` nor ``last`` is given,
                a cursor is malformed or a filter value cannot be parsed
        """
        return (
            QueryCriteria()
            .set_filters_descriptor(self.to_filters_descriptor(args))
            .set_cursor_subset_descriptor(self.to_cursor_subset_descriptor(args))
            .set_sorting_descriptor(self.to_sorting_descriptor(args))
            .set_total_count(total_count_requested)
            .set_read_only()
        )

    def to_subset_query_criteria(self, args: Arguments, *, total_count_requested: bool = True) -> QueryCriteria:
        """Read-only offset-strategy criteria for a subset query."""
        return (
            QueryCriteria()
            .set_filters_descriptor(self.to_filters_descriptor(args))
            .set_offset_and_limit_descriptor(self.to_offset_and_limit_descriptor(args))
            .set_sorting_descriptor(self.to_sorting_descriptor(args))
            .set_total_count(total_count_requested)
            .set_read_only()
        )

    # ──────────────────────────────────────────────────────────────
    # Descriptors
    # ──────────────────────────────────────────────────────────────

    @staticmethod
    def to_sorting_descriptor(args: Arguments) -> SortingDescriptor:
        sort = args.get("sort") or {}
        direction = sort.get("sort_direction")
        if isinstance(direction, str):
            try:
                direction = SortDirection[direction.upper()]
            except KeyError as e:
                msg = "sort_direction must be 'asc' or 'desc'"
                raise InvalidInputError(msg, field="sort_direction") from e
        return SortingDescriptor(sort.get("sort_by"), direction)

    def to_filters_descriptor(self, args: Arguments) -> FiltersDescriptor:
        """Build the filters of ``args["filters"]``.

        Raises:
            InvalidInputError: On an unknown operator or a malformed value
        """
        filters = FiltersDescriptor()
        for entry in args.get("filters") or ():
            try:
                field, operator, raw_value = entry["field"], entry["operator"], entry["value"]
            except KeyError as e:
                msg = f"Filter is missing '{e.args[0]}'"
                raise InvalidInputError(msg, field="filters") from e

            method = FILTER_OPERATORS.get(operator)
            if method is None:
                msg = f"Unknown filter operator: {operator}"
                raise InvalidInputError(msg, field="operator")

            value = self.parse_filter_value(entry.get("value_type") or ValueType.STRING, raw_value)
            getattr(filters, method)(field, value)
        return filters

    @staticmethod
    def parse_filter_value(value_type: ValueType | str, value: Any) -> Any:
        """Parse a filter value according to its declared type.

        Raises:
            InvalidInputError: If the type is unknown or the value malformed
        """
        try:
            parse = _PARSERS[ValueType(value_type)]
        except ValueError as e:
            msg = f"Unknown filter value type: {value_type}"
            raise InvalidInputError(msg, field="value_type") from e

        if not isinstance(value, str):
            return value
        try:
            return parse(value)
        except ValueError as e:
            msg = "One or more filters values are malformed and cannot be parsed."
            raise InvalidInputError(msg, field="value") from e

    def to_cursor_subset_descriptor(self, args: Arguments) -> CursorSubsetDescriptor:
        """Build the cursor window; ``first`` wins over ``last`` / ``before``.

        Raises:
            InvalidInputError: If neither ``first`` nor ``last`` is given
        """
        first, last = args.get("first"), args.get("last")
        if first is None and last is None:
            msg = "Neither 'first' nor 'last' were declared."
            raise InvalidInputError(msg, field="first")

        if first is not None:
            return CursorSubsetDescriptor(
                first=self._clamp(first),
                after=PaginationCursorProvider.decode(args.get("after")),
            )
        return CursorSubsetDescriptor(
            after=PaginationCursorProvider.decode(args.get("after")),
            last=self._clamp(last),
            before=PaginationCursorProvider.decode(args.get("before")),
        )

    def to_offset_and_limit_descriptor(self, args: Arguments) -> OffsetAndLimitDescriptor:
        limit = args.get("limit")
        return OffsetAndLimitDescriptor(
            offset=args.get("offset"),
            limit=self._clamp(limit) if limit is not None else self._settings.default_page_size,
        )

    def _clamp(self, size: int) -> int:
        return min(size, self._settings.max_page_size)


__all__ = ["FILTER_OPERATORS", "QueryArgumentsProvider", "ValueType"]
