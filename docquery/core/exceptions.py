"""Query engine exceptions.

Custom exceptions for query planning and execution that give callers
typed errors to map onto their own outcomes (bad request, conflict,
precondition failed) instead of raw driver exceptions.

None of these errors are retried by the engine.
"""

from __future__ import annotations

from typing import Any


class ErrorCodes:
    """Numeric error codes carried by every query error."""

    DOMAIN = 1010
    INVALID_ARGUMENT = 1020
    RUNTIME = 1050
    LOCK = 2010
    DUPLICATE = 2020


class QueryError(Exception):
    """Base exception for query engine operations.

    Attributes:
        message: Error description
        details: Additional context about the error
        code: Numeric error code (see ErrorCodes)
        status_code: HTTP-like status hint for callers mapping errors to responses
    """

    code: int = ErrorCodes.RUNTIME
    status_code: int = 500

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        """Initialize query error.

        Args:
            message: Error description
            details: Additional context about the error
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Format error message with details."""
        if self.details:
            details_str = ", ".join(f"{k}={v!r}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


class InvalidInputError(QueryError, ValueError):
    """Malformed input given to a descriptor or provider.

    Raised at build time, e.g. a non-scalar entry in an ``in`` filter,
    out-of-range geo coordinates or an undecodable pagination cursor.
    """

    code = ErrorCodes.INVALID_ARGUMENT
    status_code = 400

    def __init__(self, message: str, field: str | None = None):
        """Initialize invalid input error.

        Args:
            message: Error description
            field: Name of the offending field or argument (if applicable)
        """
        details = {"field": field} if field else {}
        super().__init__(message, details=details)
        self.field = field


class DomainInvariantError(QueryError):
    """A domain invariant of the query model was violated.

    Examples: both a cursor and an offset descriptor on one criteria,
    ``first`` and ``last`` set together, or the offset strategy selected
    without an OffsetAndLimitDescriptor. Never retryable.
    """

    code = ErrorCodes.DOMAIN
    status_code = 422


class QueryExecutionError(QueryError, RuntimeError):
    """The store failed to execute a query built by the engine.

    The original driver exception is chained as ``__cause__``.
    """

    code = ErrorCodes.RUNTIME
    status_code = 500


class ConcurrencyConflictError(QueryError):
    """Optimistic lock mismatch.

    Callers usually map this to a retryable "conflict" outcome.

    Attributes:
        document_type: Name of the document type
        document_id: Id of the conflicting document
        expected_version: Version the caller expected
        actual_version: Version found in the store (None when missing)
    """

    code = ErrorCodes.LOCK
    status_code = 409

    def __init__(
        self,
        document_type: str,
        document_id: str,
        expected_version: int | None,
        actual_version: int | None,
    ):
        """Initialize conflict error.

        Args:
            document_type: Name of the document type (e.g., "Event")
            document_id: Id of the document that failed the version check
            expected_version: Version the caller expected
            actual_version: Version found in the store
        """
        self.document_type = document_type
        self.document_id = document_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"{document_type} {document_id} was modified concurrently",
            details={
                "expected_version": expected_version,
                "actual_version": actual_version,
            },
        )


class DuplicateKeyError(QueryError):
    """Unique constraint violation reported by the store.

    Callers usually map this to a "precondition failed" outcome.
    """

    code = ErrorCodes.DUPLICATE
    status_code = 412

    def __init__(self, document_type: str, details: dict[str, Any] | None = None):
        """Initialize duplicate key error.

        Args:
            document_type: Name of the document type being written
            details: Driver-provided information about the violated key
        """
        self.document_type = document_type
        super().__init__(
            "An element with the provided value already exists in the system",
            details={"document_type": document_type, **(details or {})},
        )


__all__ = [
    "ConcurrencyConflictError",
    "DomainInvariantError",
    "DuplicateKeyError",
    "ErrorCodes",
    "InvalidInputError",
    "QueryError",
    "QueryExecutionError",
]
