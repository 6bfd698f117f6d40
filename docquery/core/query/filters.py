"""Composable filter predicates.

A FiltersDescriptor is an ordered, append-only list of filter nodes.
Each node is either a leaf condition ``(field, operator, value)`` or a
group combining nested descriptors with AND / OR:

    filters = (
        FiltersDescriptor()
        .equals("status", "published")
        .gte("date", datetime(2025, 1, 1))
        .in_("country", ["IT", "FR"], condition=country_filter_enabled)
        .or_([
            FiltersDescriptor().contains("name", "python"),
            FiltersDescriptor().contains("description", "python"),
        ])
    )

Every builder method accepts ``condition``; when it is False the call is a
no-op, so callers can add predicates conditionally without branching.
Inputs are validated eagerly: invalid values raise InvalidInputError at
build time rather than when the query runs.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from docquery.core.exceptions import InvalidInputError

if TYPE_CHECKING:
    from collections.abc import Sequence

# Mean earth radius used by the store's within-center-sphere predicate
EARTH_RADIUS_METERS = 6_378_100
MAX_CIRCLE_RADIUS_METERS = 10_000_000


class FilterOperator(StrEnum):
    """Leaf filter operators understood by the engine and the stores."""

    EQUALS = "equals"
    NOT_EQUAL = "not_equal"
    IN = "in"
    NOT_IN = "not_in"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    REGEX = "regex"
    TEXT = "text"
    SIZE = "size"
    EXISTS = "exists"
    ALL = "all"
    GEO_WITHIN_POLYGON = "geo_within_polygon"
    GEO_WITHIN_CENTER_SPHERE = "geo_within_center_sphere"


class LogicalOperator(StrEnum):
    """Combinators for filter groups."""

    AND = "and"
    OR = "or"


@dataclass(frozen=True, slots=True)
class RegexPattern:
    """Regular expression value for REGEX conditions."""

    pattern: str
    case_insensitive: bool = True

    def compile(self) -> re.Pattern[str]:
        return re.compile(self.pattern, re.IGNORECASE if self.case_insensitive else 0)


@dataclass(frozen=True, slots=True)
class FilterCondition:
    """Leaf node: ``field operator value``."""

    field: str
    operator: FilterOperator
    value: Any


@dataclass(frozen=True, slots=True)
class FilterGroup:
    """Composite node combining nested descriptors with AND / OR."""

    operator: LogicalOperator
    children: tuple[FiltersDescriptor, ...]


FilterNode = FilterCondition | FilterGroup


def is_scalar(value: Any) -> bool:
    """Whether a value may appear inside a set-membership filter."""
    return value is None or isinstance(value, str | int | float | bool | datetime)


def _is_number(value: Any) -> bool:
    return isinstance(value, int | float) and not isinstance(value, bool)


def _document_id(document: Any) -> Any:
    if isinstance(document, dict):
        return document.get("id")
    return getattr(document, "id", document)


def _plain(value: Any) -> Any:
    """Convert a filter value to plain, JSON-friendly data."""
    match value:
        case FiltersDescriptor():
            return value.get_filters_as_list()
        case RegexPattern(pattern=pattern, case_insensitive=case_insensitive):
            return {"$regex": pattern, "i": case_insensitive}
        case datetime():
            return {"$datetime": value.isoformat()}
        case list() | tuple():
            return [_plain(item) for item in value]
        case dict():
            return {str(k): _plain(v) for k, v in value.items()}
        case _:
            return value


class FiltersDescriptor:
    """Append-only builder of filter predicates.

    All builder methods return the same instance.
    """

    __slots__ = ("_filters",)

    def __init__(self) -> None:
        self._filters: list[FilterNode] = []

    def __len__(self) -> int:
        return len(self._filters)

    def __iter__(self):
        return iter(self._filters)

    def __repr__(self) -> str:
        return f"FiltersDescriptor({self._filters!r})"

    def _add(self, field: str, operator: FilterOperator, value: Any) -> FiltersDescriptor:
        self._filters.append(FilterCondition(field=field, operator=operator, value=value))
        return self

    # ──────────────────────────────────────────────────────────────
    # Equality and comparison
    # ──────────────────────────────────────────────────────────────

    def equals(self, field: str, value: Any, *, condition: bool = True) -> FiltersDescriptor:
        """Match documents where ``field`` equals ``value``.

        Equality on a whole embedded document requires an exact match,
        including field order.
        """
        if condition:
            self._add(field, FilterOperator.EQUALS, value)
        return self

    def not_equal(self, field: str, value: Any, *, condition: bool = True) -> FiltersDescriptor:
        if condition:
            self._add(field, FilterOperator.NOT_EQUAL, value)
        return self

    def gt(self, field: str, value: Any, *, condition: bool = True) -> FiltersDescriptor:
        if condition:
            self._add(field, FilterOperator.GT, value)
        return self

    def gte(self, field: str, value: Any, *, condition: bool = True) -> FiltersDescriptor:
        if condition:
            self._add(field, FilterOperator.GTE, value)
        return self

    def lt(self, field: str, value: Any, *, condition: bool = True) -> FiltersDescriptor:
        if condition:
            self._add(field, FilterOperator.LT, value)
        return self

    def lte(self, field: str, value: Any, *, condition: bool = True) -> FiltersDescriptor:
        if condition:
            self._add(field, FilterOperator.LTE, value)
        return self

    # ──────────────────────────────────────────────────────────────
    # Set membership
    # ──────────────────────────────────────────────────────────────

    def in_(self, field: str, values: Sequence[Any], *, condition: bool = True) -> FiltersDescriptor:
        """Match documents where ``field`` is one of ``values``.

        Raises:
            InvalidInputError: If ``values`` is not a list or tuple, or holds
                non-scalar entries
        """
        if condition:
            self._add(field, FilterOperator.IN, self._scalar_list(field, values, allow_null=True))
        return self

    def not_in(self, field: str, values: Sequence[Any], *, condition: bool = True) -> FiltersDescriptor:
        """Match documents where ``field`` is none of ``values``.

        Raises:
            InvalidInputError: If ``values`` is not a list or tuple, or holds
                non-scalar entries
        """
        if condition:
            self._add(field, FilterOperator.NOT_IN, self._scalar_list(field, values, allow_null=True))
        return self

    def all(self, field: str, values: Sequence[Any], *, condition: bool = True) -> FiltersDescriptor:
        """Match array fields containing every one of ``values``.

        Raises:
            InvalidInputError: If ``values`` holds non-scalar or null entries
        """
        if condition:
            self._add(field, FilterOperator.ALL, self._scalar_list(field, values, allow_null=False))
        return self

    @staticmethod
    def _scalar_list(field: str, values: Sequence[Any], *, allow_null: bool) -> list[Any]:
        # Ordered sequences only; entry order is part of the cache key
        if not isinstance(values, list | tuple):
            msg = "The values must be a list of scalars"
            raise InvalidInputError(msg, field=field)
        for value in values:
            if value is None and not allow_null:
                msg = "The values must contain only scalars"
                raise InvalidInputError(msg, field=field)
            if not is_scalar(value):
                msg = "The values must contain only scalars"
                raise InvalidInputError(msg, field=field)
        return list(values)

    # ──────────────────────────────────────────────────────────────
    # Text and regular expressions
    # ──────────────────────────────────────────────────────────────

    def contains(self, field: str, value: str, *, condition: bool = True) -> FiltersDescriptor:
        """Case-insensitive substring match."""
        if condition:
            self._add(field, FilterOperator.REGEX, RegexPattern(re.escape(value)))
        return self

    def starts_with(self, field: str, value: str, *, condition: bool = True) -> FiltersDescriptor:
        """Case-insensitive prefix match."""
        if condition:
            self._add(field, FilterOperator.REGEX, RegexPattern(f"^{re.escape(value)}"))
        return self

    def equals_case_insensitive(self, field: str, value: str, *, condition: bool = True) -> FiltersDescriptor:
        if condition:
            self._add(field, FilterOperator.REGEX, RegexPattern(f"^{re.escape(value)}$"))
        return self

    def equals_regex(self, field: str, pattern: str, *, condition: bool = True) -> FiltersDescriptor:
        """Case-insensitive match against a raw regular expression.

        Raises:
            InvalidInputError: If the pattern does not compile
        """
        if condition:
            try:
                re.compile(pattern)
            except re.error as e:
                msg = f"Invalid regular expression: {e}"
                raise InvalidInputError(msg, field=field) from e
            self._add(field, FilterOperator.REGEX, RegexPattern(pattern))
        return self

    def text(self, field: str, value: str, *, condition: bool = True) -> FiltersDescriptor:
        """Full-text search on the content of ``field``."""
        if condition:
            self._add(field, FilterOperator.TEXT, value)
        return self

    # ──────────────────────────────────────────────────────────────
    # Arrays and presence
    # ──────────────────────────────────────────────────────────────

    def size(self, field: str, size: int, *, condition: bool = True) -> FiltersDescriptor:
        """Match array fields with exactly ``size`` elements.

        Raises:
            InvalidInputError: If ``size`` is negative
        """
        if condition:
            if not isinstance(size, int) or isinstance(size, bool) or size < 0:
                msg = "size must be an integer greater than or equal to 0"
                raise InvalidInputError(msg, field=field)
            self._add(field, FilterOperator.SIZE, size)
        return self

    def exists(self, field: str, value: bool = True, *, condition: bool = True) -> FiltersDescriptor:
        if condition:
            self._add(field, FilterOperator.EXISTS, bool(value))
        return self

    # ──────────────────────────────────────────────────────────────
    # References
    # ──────────────────────────────────────────────────────────────

    def references(self, field: str, document: Any, *, condition: bool = True) -> FiltersDescriptor:
        """Match documents whose reference ``field`` points to ``document``.

        ``document`` may be a raw document, a hydrated object exposing ``id``
        or the id itself.
        """
        if condition:
            self._add(field, FilterOperator.EQUALS, _document_id(document))
        return self

    def includes_reference_to(self, field: str, document: Any, *, condition: bool = True) -> FiltersDescriptor:
        """Match documents whose reference list ``field`` contains ``document``."""
        if condition:
            self._add(field, FilterOperator.EQUALS, _document_id(document))
        return self

    # ──────────────────────────────────────────────────────────────
    # Geospatial
    # ──────────────────────────────────────────────────────────────

    def geo_within_polygon(
        self,
        field: str,
        polygon: Sequence[Sequence[float]],
        *,
        condition: bool = True,
    ) -> FiltersDescriptor:
        """Match points inside a polygon given as ``[lng, lat]`` pairs.

        The ring is closed by repeating the first point when needed.

        Raises:
            InvalidInputError: If a point is malformed or out of range
        """
        if condition:
            points = [tuple(point) for point in polygon] if self._is_valid_polygon(polygon) else None
            if points is None:
                msg = "The polygon is not valid"
                raise InvalidInputError(msg, field=field)
            if points[0] != points[-1]:
                points.append(points[0])
            self._add(field, FilterOperator.GEO_WITHIN_POLYGON, [list(point) for point in points])
        return self

    @staticmethod
    def _is_valid_polygon(polygon: Any) -> bool:
        if not isinstance(polygon, list | tuple) or len(polygon) < 3:
            return False
        for point in polygon:
            if (
                not isinstance(point, list | tuple)
                or len(point) != 2
                or not all(_is_number(coordinate) for coordinate in point)
                or not -180 <= point[0] <= 180
                or not -90 <= point[1] <= 90
            ):
                return False
        return True

    def geo_within_circle(
        self,
        field: str,
        circle: Sequence[float],
        *,
        condition: bool = True,
    ) -> FiltersDescriptor:
        """Match points inside a circle given as ``[lng, lat, radius_in_meters]``.

        The radius is converted to radians for the within-center-sphere
        predicate by dividing it by the earth radius.

        Raises:
            InvalidInputError: If the center is out of range or the radius
                is not in ``(0, 10_000_000]``
        """
        if condition:
            if not self._is_valid_circle(circle):
                msg = "The circle is not valid"
                raise InvalidInputError(msg, field=field)
            longitude, latitude, radius = circle
            self._add(
                field,
                FilterOperator.GEO_WITHIN_CENTER_SPHERE,
                [longitude, latitude, radius / EARTH_RADIUS_METERS],
            )
        return self

    @staticmethod
    def _is_valid_circle(circle: Any) -> bool:
        if not isinstance(circle, list | tuple) or len(circle) != 3:
            return False
        if not all(_is_number(item) for item in circle):
            return False
        longitude, latitude, radius = circle
        return -180 <= longitude <= 180 and -90 <= latitude <= 90 and 0 < radius <= MAX_CIRCLE_RADIUS_METERS

    # ──────────────────────────────────────────────────────────────
    # Composition
    # ──────────────────────────────────────────────────────────────

    def and_(self, filters: FiltersDescriptor, *, condition: bool = True) -> FiltersDescriptor:
        """Nest a descriptor whose predicates must all match."""
        if condition:
            if not isinstance(filters, FiltersDescriptor):
                msg = "and_ expects a FiltersDescriptor"
                raise InvalidInputError(msg)
            self._filters.append(FilterGroup(operator=LogicalOperator.AND, children=(filters,)))
        return self

    def or_(self, filters: Sequence[FiltersDescriptor], *, condition: bool = True) -> FiltersDescriptor:
        """Nest descriptors of which at least one must match.

        Raises:
            InvalidInputError: If an entry is not a FiltersDescriptor
        """
        if condition:
            if not all(isinstance(item, FiltersDescriptor) for item in filters):
                msg = "or_ expects only FiltersDescriptor instances"
                raise InvalidInputError(msg)
            self._filters.append(FilterGroup(operator=LogicalOperator.OR, children=tuple(filters)))
        return self

    # ──────────────────────────────────────────────────────────────
    # Accessors
    # ──────────────────────────────────────────────────────────────

    @property
    def nodes(self) -> tuple[FilterNode, ...]:
        return tuple(self._filters)

    def get_filters_as_list(self) -> list[dict[str, Any]]:
        """Return the filters as plain data.

        Each entry has the shape ``{"field", "operator", "value"}``; groups
        have ``field`` set to None and nested lists as ``value``.
        """
        result: list[dict[str, Any]] = []
        for node in self._filters:
            match node:
                case FilterCondition(field=field, operator=operator, value=value):
                    result.append({"field": field, "operator": operator.value, "value": _plain(value)})
                case FilterGroup(operator=operator, children=children):
                    result.append(
                        {
                            "field": None,
                            "operator": operator.value,
                            "value": [child.get_filters_as_list() for child in children],
                        }
                    )
        return result

    def get_filters_by_field(self, field: str) -> list[FilterCondition]:
        """Return the top-level conditions applied to ``field``."""
        return [node for node in self._filters if isinstance(node, FilterCondition) and node.field == field]


__all__ = [
    "EARTH_RADIUS_METERS",
    "FilterCondition",
    "FilterGroup",
    "FilterNode",
    "FilterOperator",
    "FiltersDescriptor",
    "LogicalOperator",
    "RegexPattern",
    "is_scalar",
]
