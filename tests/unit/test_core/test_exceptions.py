"""Tests for query engine exceptions."""

from docquery.core import exceptions as exc


def test_query_error_formats_details() -> None:
    error = exc.QueryError("boom", details={"document_type": "Event"})
    assert str(error) == "boom (document_type='Event')"
    assert error.status_code == 500


def test_invalid_input_error_keeps_field() -> None:
    error = exc.InvalidInputError("bad cursor", field="after")
    assert error.field == "after"
    assert error.details == {"field": "after"}
    assert error.code == exc.ErrorCodes.INVALID_ARGUMENT
    assert isinstance(error, ValueError)


def test_invalid_input_error_without_field() -> None:
    error = exc.InvalidInputError("bad")
    assert error.details == {}
    assert str(error) == "bad"


def test_concurrency_conflict_error_fields() -> None:
    error = exc.ConcurrencyConflictError("Event", "e1", expected_version=2, actual_version=3)
    assert error.status_code == 409
    assert error.expected_version == 2
    assert error.actual_version == 3
    assert "e1" in str(error)


def test_duplicate_key_error_merges_details() -> None:
    error = exc.DuplicateKeyError("users", details={"field": "email"})
    assert error.status_code == 412
    assert error.details == {"document_type": "users", "field": "email"}


def test_domain_and_execution_errors_are_query_errors() -> None:
    assert issubclass(exc.DomainInvariantError, exc.QueryError)
    assert issubclass(exc.QueryExecutionError, exc.QueryError)
    assert exc.DomainInvariantError("x").code == exc.ErrorCodes.DOMAIN
