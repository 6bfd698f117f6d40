"""Pagination response schemas.

Two response styles built from a SubsetQueryResult:

1. Relay Connection (cursor strategy):
   - edges with a cursor per node
   - PageInfo with navigation metadata and the traversal direction

2. Subset (offset strategy):
   - plain list of items with offset / limit and navigation flags
"""

from __future__ import annotations

from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


class PageInfo(BaseModel):
    """Pagination metadata following Relay cursor connections.

    Attributes:
        has_previous_page: Whether there are items before the current page
        has_next_page: Whether there are items after the current page
        start_cursor: Cursor of the first item in this page
        end_cursor: Cursor of the last item in this page
        is_paginating_forward: Direction the page was requested in
        total_count: Total number of matches (None when not requested)
    """

    has_previous_page: bool = Field(description="Whether previous items exist")
    has_next_page: bool = Field(description="Whether more items exist")
    start_cursor: str | None = Field(default=None, description="Cursor of the first item")
    end_cursor: str | None = Field(default=None, description="Cursor of the last item")
    is_paginating_forward: bool = Field(default=True, description="Whether the page was requested forward")
    total_count: int | None = Field(default=None, description="Total count (optional)")


class Edge(BaseModel, Generic[T]):
    """Edge wrapper for paginated items (Relay pattern).

    Attributes:
        node: The document
        cursor: Cursor of this document for the requested sort
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    node: T = Field(description="The document")
    cursor: str = Field(description="Cursor for this item")


class Connection(BaseModel, Generic[T]):
    """Relay connection of a cursor-paginated page.

    Client navigation:
        # First page
        first=10

        # Next page (end_cursor of the previous response)
        first=10, after=<end_cursor>

        # Previous page (start_cursor of the current response)
        last=10, before=<start_cursor>
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    edges: list[Edge[T]] = Field(default_factory=list, description="List of edges (items with cursors)")
    page_info: PageInfo = Field(description="Pagination metadata")

    @property
    def nodes(self) -> list[T]:
        """Get just the nodes without edge wrappers."""
        return [edge.node for edge in self.edges]

    @property
    def total_count(self) -> int | None:
        return self.page_info.total_count


class Subset(BaseModel, Generic[T]):
    """Offset-paginated page.

    Attributes:
        items: Documents of the page
        offset: Number of skipped matches
        limit: Requested page size
        has_previous_page: Whether items exist before the page
        has_next_page: Whether items exist after the page
        total_count: Total number of matches (None when not requested)
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    items: list[T] = Field(default_factory=list, description="List of items")
    offset: int = Field(default=0, ge=0, description="Number of skipped items")
    limit: int | None = Field(default=None, description="Requested page size")
    has_previous_page: bool = Field(default=False, description="Whether previous items exist")
    has_next_page: bool = Field(default=False, description="Whether more items exist")
    total_count: int | None = Field(default=None, description="Total count (optional)")


__all__ = [
    "Connection",
    "Edge",
    "PageInfo",
    "Subset",
]
