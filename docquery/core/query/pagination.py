"""Pagination window descriptors.

Two mutually exclusive strategies:

- OffsetAndLimitDescriptor: classic ``skip`` / ``limit`` windows
- CursorSubsetDescriptor: Relay-style keyset windows, either forward
  (``first`` / ``after``) or backward (``last`` / ``before``)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from docquery.core.exceptions import DomainInvariantError, InvalidInputError

if TYPE_CHECKING:
    from docquery.core.pagination.cursor import DecodedPaginationCursor


def _check_int(name: str, value: int | None, minimum: int) -> None:
    if value is None:
        return
    if not isinstance(value, int) or isinstance(value, bool) or value < minimum:
        msg = f"{name} must be an integer greater than or equal to {minimum}"
        raise InvalidInputError(msg, field=name)


class OffsetAndLimitDescriptor:
    """Offset / limit window.

    Attributes:
        offset: Number of documents to skip (>= 0)
        limit: Maximum number of documents to return (>= 1)
    """

    __slots__ = ("_limit", "_offset")

    def __init__(self, offset: int | None = None, limit: int | None = None) -> None:
        self._offset: int | None = None
        self._limit: int | None = None
        self.set_offset(offset)
        self.set_limit(limit)

    @property
    def offset(self) -> int | None:
        return self._offset

    @property
    def limit(self) -> int | None:
        return self._limit

    def set_offset(self, offset: int | None) -> OffsetAndLimitDescriptor:
        _check_int("offset", offset, 0)
        self._offset = offset
        return self

    def set_limit(self, limit: int | None) -> OffsetAndLimitDescriptor:
        _check_int("limit", limit, 1)
        self._limit = limit
        return self

    def to_dict(self) -> dict[str, Any]:
        return {"offset": self._offset, "limit": self._limit}

    def __repr__(self) -> str:
        return f"OffsetAndLimitDescriptor(offset={self._offset}, limit={self._limit})"


class CursorSubsetDescriptor:
    """Keyset window over the ordered key ``(sort_by, id)``.

    ``first`` and ``last`` are mutually exclusive. The window is traversed
    forward when ``first`` is set or ``last`` is absent, backward otherwise.
    Both cursors may be set: the page is bounded by the one matching the
    traversal direction (``after`` forward, ``before`` backward) and the
    other only bounds the previous-page probe.

    Example:
        subset = CursorSubsetDescriptor().set_first(10).set_after(
            PaginationCursorProvider.decode(token)
        )
    """

    __slots__ = ("_after", "_before", "_first", "_last")

    def __init__(
        self,
        *,
        first: int | None = None,
        after: DecodedPaginationCursor | None = None,
        last: int | None = None,
        before: DecodedPaginationCursor | None = None,
    ) -> None:
        self._first: int | None = None
        self._last: int | None = None
        self._after: DecodedPaginationCursor | None = None
        self._before: DecodedPaginationCursor | None = None
        self.set_first(first)
        self.set_last(last)
        self.set_after(after)
        self.set_before(before)

    @property
    def first(self) -> int | None:
        return self._first

    @property
    def last(self) -> int | None:
        return self._last

    @property
    def after(self) -> DecodedPaginationCursor | None:
        return self._after

    @property
    def before(self) -> DecodedPaginationCursor | None:
        return self._before

    @property
    def is_paginating_forward(self) -> bool:
        return self._first is not None or self._last is None

    def set_first(self, first: int | None) -> CursorSubsetDescriptor:
        """Set the forward window size.

        Raises:
            InvalidInputError: If ``first`` is lower than 1
            DomainInvariantError: If ``last`` is already set
        """
        _check_int("first", first, 1)
        if first is not None and self._last is not None:
            msg = "Cannot set first when last is already set"
            raise DomainInvariantError(msg, details={"last": self._last})
        self._first = first
        return self

    def set_last(self, last: int | None) -> CursorSubsetDescriptor:
        """Set the backward window size.

        Raises:
            InvalidInputError: If ``last`` is lower than 1
            DomainInvariantError: If ``first`` is already set
        """
        _check_int("last", last, 1)
        if last is not None and self._first is not None:
            msg = "Cannot set last when first is already set"
            raise DomainInvariantError(msg, details={"first": self._first})
        self._last = last
        return self

    def set_after(self, after: DecodedPaginationCursor | None) -> CursorSubsetDescriptor:
        self._after = after
        return self

    def set_before(self, before: DecodedPaginationCursor | None) -> CursorSubsetDescriptor:
        self._before = before
        return self

    def to_dict(self) -> dict[str, Any]:
        return {
            "first": self._first,
            "after": self._after.to_dict() if self._after else None,
            "last": self._last,
            "before": self._before.to_dict() if self._before else None,
        }

    def __repr__(self) -> str:
        return (
            f"CursorSubsetDescriptor(first={self._first}, after={self._after!r}, "
            f"last={self._last}, before={self._before!r})"
        )


Pagination = OffsetAndLimitDescriptor | CursorSubsetDescriptor

__all__ = ["CursorSubsetDescriptor", "OffsetAndLimitDescriptor", "Pagination"]
