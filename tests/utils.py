"""Test utilities and helper functions.

Seed data and shortcuts shared by the unit and integration suites.

Usage:
    from tests.utils import cursor_criteria, cursor_of, ids

    criteria = cursor_criteria(CursorSubsetDescriptor(first=3, after=cursor_of(3)))
    result = await engine.get_subset("Event", criteria)
    assert ids(result.documents) == [event_id(4), event_id(5), event_id(6)]
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any

from docquery.core.pagination.cursor import DecodedPaginationCursor, PaginationCursorProvider
from docquery.core.query import (
    CursorSubsetDescriptor,
    QueryCriteria,
    SortDirection,
    SortingDescriptor,
)

BASE_DATE = datetime(2025, 1, 1, 9, 0, tzinfo=UTC)


# ============================================================================
# Seed documents
# ============================================================================


def event_id(number: int) -> str:
    """Zero-padded id so lexical id order matches numeric order."""
    return f"event-{number:02d}"


def make_events(count: int = 9) -> list[dict[str, Any]]:
    """Events 1..count dated one day apart, ascending with their number.

    Odd events are given by the Italian speaker, even ones by the French
    speaker; the first three are tagged ``python``.
    """
    return [
        {
            "id": event_id(number),
            "title": f"Event {number}",
            "date": BASE_DATE + timedelta(days=number),
            "attendees": number * 10,
            "speaker": "speaker-it" if number % 2 else "speaker-fr",
            "tags": ["python"] if number <= 3 else ["rust"],
        }
        for number in range(1, count + 1)
    ]


SPEAKERS = [
    {"id": "speaker-it", "name": "Giulia", "country": "IT"},
    {"id": "speaker-fr", "name": "Camille", "country": "FR"},
]


# ============================================================================
# Criteria helpers
# ============================================================================


def cursor_of(number: int) -> DecodedPaginationCursor:
    """Decoded cursor of event ``number`` for a sort on ``date``."""
    event = make_events()[number - 1]
    decoded = PaginationCursorProvider.decode(PaginationCursorProvider.encode(event["id"], event["date"]))
    assert decoded is not None
    return decoded


def cursor_criteria(
    subset: CursorSubsetDescriptor,
    *,
    sort_by: str = "date",
    direction: SortDirection = SortDirection.ASC,
    read_only: bool = True,
) -> QueryCriteria:
    return (
        QueryCriteria()
        .set_sorting_descriptor(SortingDescriptor(sort_by, direction))
        .set_cursor_subset_descriptor(subset)
        .set_read_only(read_only)
    )


def ids(documents: Any) -> list[str]:
    return [document["id"] for document in documents]
