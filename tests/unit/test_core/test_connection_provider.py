"""Unit tests for RelayConnectionProvider and SubsetProvider."""

from __future__ import annotations

import pytest

from docquery.core.pagination import PaginationCursorProvider, RelayConnectionProvider, SubsetProvider
from docquery.core.query import (
    CursorSubsetDescriptor,
    OffsetAndLimitDescriptor,
    QueryCriteria,
    SortDirection,
    SortingDescriptor,
    SubsetQueryResult,
)
from tests.utils import make_events


@pytest.mark.unit
class TestRelayConnectionProvider:
    """Tests for Relay connection building."""

    def test_edges_carry_document_cursors(self, registry):
        """Each edge cursor encodes the document id and sort value."""
        events = make_events(3)
        criteria = (
            QueryCriteria()
            .set_sorting_descriptor(SortingDescriptor("date", SortDirection.ASC))
            .set_cursor_subset_descriptor(CursorSubsetDescriptor(first=3))
        )
        result = SubsetQueryResult(
            documents=tuple(events),
            documents_total_count=9,
            has_next_page=True,
            query_criteria=criteria,
        )

        connection = RelayConnectionProvider(registry).to_connection(result, "Event")

        decoded = PaginationCursorProvider.decode(connection.edges[1].cursor)
        assert decoded is not None
        assert decoded.id == events[1]["id"]
        assert decoded.cursor_value == events[1]["date"]
        assert connection.page_info.start_cursor == connection.edges[0].cursor
        assert connection.page_info.end_cursor == connection.edges[-1].cursor
        assert connection.page_info.has_next_page is True
        assert connection.page_info.has_previous_page is False
        assert connection.page_info.is_paginating_forward is True
        assert connection.total_count == 9

    def test_backward_window_is_reported(self, registry):
        """is_paginating_forward follows the cursor window."""
        criteria = QueryCriteria().set_cursor_subset_descriptor(CursorSubsetDescriptor(last=2))
        result = SubsetQueryResult(documents=tuple(make_events(2)), query_criteria=criteria)

        connection = RelayConnectionProvider(registry).to_connection(result, "Event")

        assert connection.page_info.is_paginating_forward is False

    def test_empty_result(self, registry):
        """An empty page has no cursors."""
        connection = RelayConnectionProvider(registry).to_connection(SubsetQueryResult(), "Event")

        assert connection.edges == []
        assert connection.page_info.start_cursor is None
        assert connection.page_info.end_cursor is None
        assert connection.page_info.total_count is None

    def test_without_criteria_sorts_by_id(self, registry):
        """Cursors default to the identity sort field."""
        result = SubsetQueryResult(documents=({"id": "e1"},))

        connection = RelayConnectionProvider(registry).to_connection(result, "Event")

        decoded = PaginationCursorProvider.decode(connection.edges[0].cursor)
        assert decoded is not None
        assert decoded.cursor_value == "e1"


@pytest.mark.unit
class TestSubsetProvider:
    """Tests for offset subsets."""

    def test_to_subset(self):
        """Offset and limit are copied from the window."""
        criteria = QueryCriteria().set_offset_and_limit_descriptor(OffsetAndLimitDescriptor(offset=3, limit=3))
        result = SubsetQueryResult(
            documents=tuple(make_events(3)),
            documents_total_count=9,
            has_previous_page=True,
            has_next_page=True,
            query_criteria=criteria,
        )

        subset = SubsetProvider.to_subset(result)

        assert len(subset.items) == 3
        assert subset.offset == 3
        assert subset.limit == 3
        assert subset.has_previous_page is True
        assert subset.total_count == 9

    def test_missing_offset_is_zero(self):
        """A window without offset starts at 0."""
        criteria = QueryCriteria().set_offset_and_limit_descriptor(OffsetAndLimitDescriptor(limit=2))

        subset = SubsetProvider.to_subset(SubsetQueryResult(query_criteria=criteria))

        assert subset.offset == 0
        assert subset.limit == 2
