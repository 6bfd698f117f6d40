"""Sort order of a query."""

from __future__ import annotations

from enum import IntEnum
from typing import Any

from docquery.core.exceptions import InvalidInputError


class SortDirection(IntEnum):
    """Sort direction, valued like the store's sort keys."""

    ASC = 1
    DESC = -1

    def inverted(self) -> SortDirection:
        """Return the opposite direction."""
        return SortDirection.DESC if self is SortDirection.ASC else SortDirection.ASC


class SortingDescriptor:
    """Sort field and direction.

    Defaults to the identity field, descending (newest records first).

    Example:
        sorting = SortingDescriptor().set_sort_by("date").set_sort_direction(SortDirection.ASC)
    """

    __slots__ = ("_sort_by", "_sort_direction")

    DEFAULT_SORT_BY = "id"

    def __init__(
        self,
        sort_by: str | None = None,
        sort_direction: SortDirection | int | None = None,
    ) -> None:
        self._sort_by = self.DEFAULT_SORT_BY
        self._sort_direction = SortDirection.DESC
        self.set_sort_by(sort_by)
        self.set_sort_direction(sort_direction)

    @property
    def sort_by(self) -> str:
        return self._sort_by

    @property
    def sort_direction(self) -> SortDirection:
        return self._sort_direction

    def set_sort_by(self, sort_by: str | None) -> SortingDescriptor:
        """Set the sort field. ``None`` keeps the current value."""
        if sort_by is not None:
            self._sort_by = sort_by
        return self

    def set_sort_direction(self, sort_direction: SortDirection | int | None) -> SortingDescriptor:
        """Set the sort direction. ``None`` keeps the current value.

        Raises:
            InvalidInputError: If the direction is neither 1 (asc) nor -1 (desc)
        """
        if sort_direction is None:
            return self
        try:
            self._sort_direction = SortDirection(sort_direction)
        except ValueError as e:
            msg = "sort_direction must be 1 for 'asc' or -1 for 'desc'"
            raise InvalidInputError(msg, field="sort_direction") from e
        return self

    def to_dict(self) -> dict[str, Any]:
        return {"sort_by": self._sort_by, "sort_direction": int(self._sort_direction)}

    def __repr__(self) -> str:
        return f"SortingDescriptor(sort_by={self._sort_by!r}, sort_direction={self._sort_direction.name})"


__all__ = ["SortDirection", "SortingDescriptor"]
