"""Build pagination responses from query results.

A cursor-strategy SubsetQueryResult becomes a Relay Connection whose edges
carry one cursor per document; an offset-strategy result becomes a Subset.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from docquery.core.pagination.cursor import PaginationCursorProvider
from docquery.core.pagination.schemas import Connection, Edge, PageInfo, Subset
from docquery.core.query.sorting import SortingDescriptor

if TYPE_CHECKING:
    from docquery.core.engine.registry import DocumentRegistry
    from docquery.core.query.result import SubsetQueryResult


class RelayConnectionProvider:
    """Turn cursor-paginated results into Relay connections.

    Args:
        registry: Registry used to resolve field accessors of the
            document type when computing cursors

    Example:
        result = await engine.get_subset("Event", criteria)
        connection = RelayConnectionProvider(registry).to_connection(result, "Event")
        next_token = connection.page_info.end_cursor
    """

    def __init__(self, registry: DocumentRegistry) -> None:
        self._registry = registry

    def to_connection(self, result: SubsetQueryResult[Any], document_type: str) -> Connection[Any]:
        doc_type = self._registry.get(document_type)
        criteria = result.query_criteria
        sort_by = criteria.sorting_descriptor.sort_by if criteria is not None else SortingDescriptor.DEFAULT_SORT_BY

        edges = [
            Edge[Any](
                node=document,
                cursor=PaginationCursorProvider.document_to_cursor(document, sort_by, doc_type.accessors),
            )
            for document in result.documents
        ]

        subset = criteria.cursor_subset_descriptor if criteria is not None else None
        page_info = PageInfo(
            has_previous_page=result.has_previous_page,
            has_next_page=result.has_next_page,
            start_cursor=edges[0].cursor if edges else None,
            end_cursor=edges[-1].cursor if edges else None,
            is_paginating_forward=subset.is_paginating_forward if subset is not None else True,
            total_count=result.documents_total_count,
        )
        return Connection[Any](edges=edges, page_info=page_info)


class SubsetProvider:
    """Turn offset-paginated results into subsets."""

    @staticmethod
    def to_subset(result: SubsetQueryResult[Any]) -> Subset[Any]:
        criteria = result.query_criteria
        window = criteria.offset_and_limit_descriptor if criteria is not None else None
        return Subset[Any](
            items=list(result.documents),
            offset=(window.offset or 0) if window is not None else 0,
            limit=window.limit if window is not None else None,
            has_previous_page=result.has_previous_page,
            has_next_page=result.has_next_page,
            total_count=result.documents_total_count,
        )


__all__ = ["RelayConnectionProvider", "SubsetProvider"]
