"""Paginated query result."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Generic, TypeVar

if TYPE_CHECKING:
    from docquery.core.query.criteria import QueryCriteria

T = TypeVar("T")


@dataclass(slots=True, frozen=True)
class SubsetQueryResult(Generic[T]):
    """Page of documents with navigation metadata.

    Attributes:
        documents: Documents of the page in canonical (declared sort) order
        documents_total_count: Matches ignoring the window, None when not requested
        has_previous_page: Whether documents exist before the page
        has_next_page: Whether documents exist after the page
        query_criteria: Criteria the page was produced from
    """

    documents: tuple[T, ...] = field(default_factory=tuple)
    documents_total_count: int | None = None
    has_previous_page: bool = False
    has_next_page: bool = False
    query_criteria: QueryCriteria | None = None

    def __len__(self) -> int:
        return len(self.documents)

    def to_dict(self) -> dict[str, Any]:
        return {
            "documents": list(self.documents),
            "documents_total_count": self.documents_total_count,
            "has_previous_page": self.has_previous_page,
            "has_next_page": self.has_next_page,
        }


__all__ = ["SubsetQueryResult"]
