"""Query criteria model.

Descriptors composed by callers into a QueryCriteria:

    criteria = (
        QueryCriteria()
        .set_filters_descriptor(FiltersDescriptor().equals("status", "published"))
        .set_sorting_descriptor(SortingDescriptor("date", SortDirection.ASC))
        .set_cursor_subset_descriptor(CursorSubsetDescriptor(first=20))
    )
    result = await engine.get_subset("Event", criteria)
"""

from docquery.core.query.criteria import QueryCriteria, QueryStrategy
from docquery.core.query.filters import (
    FilterCondition,
    FilterGroup,
    FilterNode,
    FilterOperator,
    FiltersDescriptor,
    LogicalOperator,
    RegexPattern,
)
from docquery.core.query.pagination import (
    CursorSubsetDescriptor,
    OffsetAndLimitDescriptor,
    Pagination,
)
from docquery.core.query.result import SubsetQueryResult
from docquery.core.query.sorting import SortDirection, SortingDescriptor
from docquery.core.query.update import UpdateDescriptor, UpdateOperation, UpdateOperator

__all__ = [
    "CursorSubsetDescriptor",
    "FilterCondition",
    "FilterGroup",
    "FilterNode",
    "FilterOperator",
    "FiltersDescriptor",
    "LogicalOperator",
    "OffsetAndLimitDescriptor",
    "Pagination",
    "QueryCriteria",
    "QueryStrategy",
    "RegexPattern",
    "SortDirection",
    "SortingDescriptor",
    "SubsetQueryResult",
    "UpdateDescriptor",
    "UpdateOperation",
    "UpdateOperator",
]
