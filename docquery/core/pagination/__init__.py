"""Cursor pagination and response building.

Usage:
    from docquery.core.pagination import QueryArgumentsProvider, RelayConnectionProvider

    criteria = QueryArgumentsProvider().to_relay_query_criteria(args)
    result = await engine.get_subset("Event", criteria)
    connection = RelayConnectionProvider(registry).to_connection(result, "Event")
"""

from docquery.core.pagination.cursor import DecodedPaginationCursor, PaginationCursorProvider
from docquery.core.pagination.schemas import Connection, Edge, PageInfo, Subset
from docquery.core.pagination.arguments import QueryArgumentsProvider, ValueType
from docquery.core.pagination.connection import RelayConnectionProvider, SubsetProvider

__all__ = [
    "Connection",
    "DecodedPaginationCursor",
    "Edge",
    "PageInfo",
    "PaginationCursorProvider",
    "QueryArgumentsProvider",
    "RelayConnectionProvider",
    "Subset",
    "SubsetProvider",
    "ValueType",
]
