"""Unit tests for the in-memory document store."""

from __future__ import annotations

from datetime import timedelta

import pytest

from docquery.core.exceptions import ConcurrencyConflictError, DuplicateKeyError
from docquery.core.query import FilterOperator, RegexPattern, SortDirection
from docquery.core.query.filters import EARTH_RADIUS_METERS
from docquery.core.query.update import UpdateOperation, UpdateOperator
from docquery.infra.store import MemoryDocumentStore
from docquery.infra.store.base import (
    AndExpression,
    DeleteDocument,
    FieldCondition,
    OrExpression,
    PrimeReference,
    StoreQuery,
    UpsertDocument,
)
from tests.utils import BASE_DATE, event_id, ids


def events_query(*expressions, **options) -> StoreQuery:
    return StoreQuery(
        collection="events",
        expressions=expressions,
        sort=options.pop("sort", (("id", SortDirection.ASC),)),
        **options,
    )


# ──────────────────────────────────────────────────────────────
# Matching
# ──────────────────────────────────────────────────────────────


@pytest.mark.unit
class TestMatching:
    """Tests for expression evaluation."""

    async def test_equals_matches_array_elements(self, store):
        """A scalar equals an array field when any element matches."""
        documents = await store.find(events_query(FieldCondition("tags", FilterOperator.EQUALS, "python")))

        assert ids(documents) == [event_id(1), event_id(2), event_id(3)]

    async def test_missing_field_equals_none(self, store):
        """Absent fields compare equal to None."""
        assert await store.count(events_query(FieldCondition("venue", FilterOperator.EQUALS, None))) == 9

    async def test_range_on_aware_datetimes(self, store):
        """Datetime ranges compare instants."""
        documents = await store.find(
            events_query(FieldCondition("date", FilterOperator.GT, BASE_DATE + timedelta(days=7)))
        )

        assert ids(documents) == [event_id(8), event_id(9)]

    async def test_range_ignores_other_kinds(self, store):
        """Numbers never compare with strings."""
        assert await store.count(events_query(FieldCondition("title", FilterOperator.GT, 0))) == 0

    async def test_in_and_not_in(self, store):
        """Membership operators test scalar candidates."""
        in_query = events_query(FieldCondition("attendees", FilterOperator.IN, [10, 90]))
        not_in_query = events_query(FieldCondition("attendees", FilterOperator.NOT_IN, [10, 90]))

        assert ids(await store.find(in_query)) == [event_id(1), event_id(9)]
        assert await store.count(not_in_query) == 7

    async def test_regex_and_text(self, store):
        """Regex and text predicates match string fields."""
        regex = FieldCondition("title", FilterOperator.REGEX, RegexPattern("^event 1$"))
        text = FieldCondition("title", FilterOperator.TEXT, "EVENT")

        assert ids(await store.find(events_query(regex))) == [event_id(1)]
        assert await store.count(events_query(text)) == 9

    async def test_and_or_groups(self, store):
        """Nested groups combine their children."""
        expression = OrExpression(
            (
                FieldCondition("attendees", FilterOperator.LT, 20),
                AndExpression(
                    (
                        FieldCondition("speaker", FilterOperator.EQUALS, "speaker-fr"),
                        FieldCondition("attendees", FilterOperator.GTE, 80),
                    )
                ),
            )
        )

        assert ids(await store.find(events_query(expression))) == [event_id(1), event_id(8)]

    async def test_size_all_exists(self, store):
        """Array and presence predicates."""
        size = FieldCondition("tags", FilterOperator.SIZE, 1)
        all_tags = FieldCondition("tags", FilterOperator.ALL, ["rust"])
        exists = FieldCondition("venue", FilterOperator.EXISTS, False)

        assert await store.count(events_query(size)) == 9
        assert await store.count(events_query(all_tags)) == 6
        assert await store.count(events_query(exists)) == 9

    async def test_geo_predicates(self):
        """Points are matched against polygons and spherical circles."""
        memory_store = MemoryDocumentStore()
        memory_store.insert_many(
            "venues",
            [
                {"id": "rome", "location": [12.4964, 41.9028]},
                {"id": "paris", "location": {"type": "Point", "coordinates": [2.3522, 48.8566]}},
            ],
        )
        polygon = [[10.0, 40.0], [15.0, 40.0], [15.0, 45.0], [10.0, 45.0], [10.0, 40.0]]
        circle = [2.35, 48.85, 5_000 / EARTH_RADIUS_METERS]

        in_polygon = await memory_store.find(
            StoreQuery("venues", (FieldCondition("location", FilterOperator.GEO_WITHIN_POLYGON, polygon),))
        )
        in_circle = await memory_store.find(
            StoreQuery("venues", (FieldCondition("location", FilterOperator.GEO_WITHIN_CENTER_SPHERE, circle),))
        )

        assert ids(in_polygon) == ["rome"]
        assert ids(in_circle) == ["paris"]


# ──────────────────────────────────────────────────────────────
# Reads
# ──────────────────────────────────────────────────────────────


@pytest.mark.unit
class TestReads:
    """Tests for sort, windows, projection, distinct and priming."""

    async def test_sort_with_tie_breaker(self, store):
        """Ties on the first key are ordered by the second."""
        documents = await store.find(
            StoreQuery("events", sort=(("speaker", SortDirection.ASC), ("id", SortDirection.DESC)))
        )

        assert ids(documents)[:2] == [event_id(8), event_id(6)]
        assert ids(documents)[-1] == event_id(1)

    async def test_skip_and_limit(self, store):
        """Windows apply after sorting; count honours them."""
        query = events_query(skip=7, limit=5)

        assert ids(await store.find(query)) == [event_id(8), event_id(9)]
        assert await store.count(query) == 2

    async def test_select_keeps_id(self, store):
        """Selected fields always include the id."""
        documents = await store.find(events_query(select=("title",), limit=1))

        assert documents == [{"id": event_id(1), "title": "Event 1"}]

    async def test_exclude_never_drops_id(self, store):
        """Excluded fields are removed, except the id."""
        documents = await store.find(events_query(exclude=("tags", "id"), limit=1))

        assert "tags" not in documents[0]
        assert documents[0]["id"] == event_id(1)

    async def test_results_are_copies(self, store):
        """Mutating returned documents leaves the store untouched."""
        documents = await store.find(events_query(limit=1))
        documents[0]["title"] = "changed"

        again = await store.find(events_query(limit=1))
        assert again[0]["title"] == "Event 1"

    async def test_distinct_flattens_arrays(self, store):
        """Array values contribute their elements."""
        assert await store.distinct(events_query(), "tags") == ["python", "rust"]
        assert await store.distinct(events_query(), "speaker") == ["speaker-it", "speaker-fr"]

    async def test_prime_replaces_reference_ids(self, store):
        """Primed references are replaced by the referenced documents."""
        documents = await store.find(events_query(limit=2, prime=(PrimeReference("speaker", "speakers"),)))

        assert documents[0]["speaker"]["country"] == "IT"
        assert documents[1]["speaker"]["name"] == "Camille"


# ──────────────────────────────────────────────────────────────
# Writes
# ──────────────────────────────────────────────────────────────


@pytest.mark.unit
class TestWrites:
    """Tests for updates, deletes and unit-of-work writes."""

    async def test_update_first_match_only(self, store):
        """multi=False modifies a single document."""
        operations = [
            UpdateOperation("title", UpdateOperator.SET, "Renamed"),
            UpdateOperation("attendees", UpdateOperator.INC, 5),
            UpdateOperation("tags", UpdateOperator.PUSH, "async"),
        ]

        modified = await store.update(
            events_query(FieldCondition("speaker", FilterOperator.EQUALS, "speaker-fr")), operations, multi=False
        )

        documents = await store.find(events_query(FieldCondition("title", FilterOperator.EQUALS, "Renamed")))
        assert modified == 1
        assert ids(documents) == [event_id(2)]
        assert documents[0]["attendees"] == 25
        assert documents[0]["tags"] == ["python", "async"]

    async def test_update_many(self, store):
        """multi=True modifies every match."""
        modified = await store.update(
            events_query(), [UpdateOperation("status", UpdateOperator.SET, "published")], multi=True
        )

        assert modified == 9
        assert await store.count(events_query(FieldCondition("status", FilterOperator.EQUALS, "published"))) == 9

    async def test_delete(self, store):
        """Every match is deleted."""
        deleted = await store.delete(events_query(FieldCondition("tags", FilterOperator.EQUALS, "python")))

        assert deleted == 3
        assert await store.count(events_query()) == 6

    async def test_upsert_assigns_id_and_versions(self):
        """New documents get an id and version 1; updates bump it."""
        memory_store = MemoryDocumentStore()
        document = {"title": "PyCon"}

        await memory_store.apply_writes([UpsertDocument("events", document)])
        await memory_store.apply_writes(
            [UpsertDocument("events", {"id": document["id"], "title": "PyCon IT"}, expected_version=1)]
        )

        assert document["id"]
        assert await memory_store.get_version("events", document["id"]) == 2

    async def test_version_mismatch_conflicts(self, store):
        """A stale expected version raises a conflict."""
        await store.apply_writes([UpsertDocument("events", {"id": event_id(1), "title": "v1"})])

        with pytest.raises(ConcurrencyConflictError) as exc_info:
            await store.apply_writes([UpsertDocument("events", {"id": event_id(1)}, expected_version=3)])

        assert exc_info.value.actual_version == 1

    async def test_delete_with_stale_version_conflicts(self, store):
        """Versioned deletes check the stored version."""
        with pytest.raises(ConcurrencyConflictError):
            await store.apply_writes([DeleteDocument("events", event_id(1), expected_version=1)])

    async def test_failed_batch_leaves_store_untouched(self):
        """A duplicate key aborts every write of the batch."""
        memory_store = MemoryDocumentStore(unique_fields={"users": ["email"]})
        memory_store.insert_many("users", [{"id": "u1", "email": "a@example.com"}])

        with pytest.raises(DuplicateKeyError):
            await memory_store.apply_writes(
                [
                    UpsertDocument("users", {"email": "b@example.com"}),
                    UpsertDocument("users", {"email": "a@example.com"}),
                ]
            )

        assert await memory_store.count(StoreQuery("users")) == 1

    async def test_update_violating_unique_field_is_rejected(self):
        """An update that duplicates a unique value raises and changes nothing."""
        memory_store = MemoryDocumentStore(unique_fields={"users": ["email"]})
        memory_store.insert_many(
            "users",
            [{"id": "u1", "email": "a@example.com"}, {"id": "u2", "email": "b@example.com", "logins": 1}],
        )
        operations = [
            UpdateOperation("logins", UpdateOperator.INC, 1),
            UpdateOperation("email", UpdateOperator.SET, "a@example.com"),
        ]

        with pytest.raises(DuplicateKeyError):
            await memory_store.update(
                StoreQuery("users", (FieldCondition("id", FilterOperator.EQUALS, "u2"),)), operations, multi=False
            )

        documents = await memory_store.find(StoreQuery("users", sort=(("id", SortDirection.ASC),)))
        assert documents[1] == {"id": "u2", "email": "b@example.com", "logins": 1}

    async def test_update_many_to_same_unique_value_is_rejected(self):
        """Several documents cannot be set to one unique value."""
        memory_store = MemoryDocumentStore(unique_fields={"users": ["email"]})
        memory_store.insert_many("users", [{"id": "u1", "email": "a@example.com"}, {"id": "u2"}])

        with pytest.raises(DuplicateKeyError):
            await memory_store.update(
                StoreQuery("users"), [UpdateOperation("email", UpdateOperator.SET, "c@example.com")], multi=True
            )
