"""Pagination cursor encoding and decoding.

Cursors are opaque strings that encode a document id plus the value of
the sort field at that document. The engine uses them as keyset
boundaries: ``(sort_by, id)`` strictly after / before the cursor.

The cursor format is:
1. ``"{id}|{serialized_value}"``
2. Base64 encoded

Serialized values carry a type tag so they decode back to the same type:

    None                     -> ""
    "plain text"             -> "plain text"
    ""                       -> "\\str:"
    42                       -> "\\int:42"
    1.5                      -> "\\float:1.5"
    True                     -> "\\bool:1"
    datetime(2025, 1, 15)    -> "\\DateTime:2025-01-15 00:00:00.000000"

Example:
    token = PaginationCursorProvider.encode("65a1f0", datetime(2025, 1, 15, 10, 30))
    cursor = PaginationCursorProvider.decode(token)
    print(cursor.id, cursor.cursor_value)
"""

from __future__ import annotations

import base64
import binascii
from collections.abc import Callable, Iterable, Mapping
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from docquery.core.exceptions import DomainInvariantError, InvalidInputError
from docquery.utils.fields import get_field_value

ID_SEPARATOR = "|"
DATETIME_PREFIX = "\\DateTime:"
DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S.%f"
DATETIME_FORMAT_WITH_OFFSET = "%Y-%m-%d %H:%M:%S.%f%z"

_STR_PREFIX = "\\str:"
_INT_PREFIX = "\\int:"
_FLOAT_PREFIX = "\\float:"
_BOOL_PREFIX = "\\bool:"

FieldAccessor = Callable[[Any], Any]


class DecodedPaginationCursor(BaseModel):
    """Decoded pagination boundary.

    Attributes:
        id: Id of the boundary document
        cursor_value: Value of the sort field at the boundary document
    """

    id: str = Field(description="Id of the boundary document")
    cursor_value: Any = Field(default=None, description="Sort field value at the boundary")

    model_config = {"frozen": True}

    def to_dict(self) -> dict[str, Any]:
        value = self.cursor_value
        if isinstance(value, datetime):
            value = {"$datetime": value.isoformat()}
        return {"id": self.id, "cursor_value": value}


class PaginationCursorProvider:
    """Encode and decode pagination cursors.

    All methods are pure functions exposed as static methods.
    """

    @staticmethod
    def encode(document_id: Any, cursor_value: Any) -> str:
        """Encode a document id and its sort field value to an opaque token.

        Args:
            document_id: Id of the boundary document
            cursor_value: Scalar, datetime or None

        Returns:
            Base64 encoded token

        Raises:
            InvalidInputError: If the id contains the ``|`` separator
            DomainInvariantError: If the value is not a scalar, datetime or None
        """
        if ID_SEPARATOR in str(document_id):
            msg = f"Document ids used in cursors cannot contain {ID_SEPARATOR!r}"
            raise InvalidInputError(msg, field="id")
        serialized = PaginationCursorProvider._serialize_value(cursor_value)
        return base64.b64encode(f"{document_id}{ID_SEPARATOR}{serialized}".encode()).decode()

    @staticmethod
    def decode(token: str | None) -> DecodedPaginationCursor | None:
        """Decode a token produced by :meth:`encode`.

        Args:
            token: Opaque token, None or empty string

        Returns:
            The decoded cursor, or None for None/empty input

        Raises:
            InvalidInputError: If the token is malformed
        """
        if not token:
            return None
        try:
            raw = base64.b64decode(token.encode(), validate=True).decode()
        except (binascii.Error, UnicodeError) as e:
            msg = f"Invalid pagination cursor: {e}"
            raise InvalidInputError(msg, field="cursor") from e

        document_id, separator, serialized = raw.partition(ID_SEPARATOR)
        if not separator or not document_id:
            msg = "Invalid pagination cursor: missing id separator"
            raise InvalidInputError(msg, field="cursor")

        return DecodedPaginationCursor(
            id=document_id,
            cursor_value=PaginationCursorProvider._deserialize_value(serialized),
        )

    @staticmethod
    def encode_many(pairs: Iterable[tuple[Any, Any]]) -> list[str]:
        """Encode ``(id, value)`` pairs."""
        return [PaginationCursorProvider.encode(document_id, value) for document_id, value in pairs]

    @staticmethod
    def decode_many(tokens: Iterable[str | None]) -> list[DecodedPaginationCursor | None]:
        return [PaginationCursorProvider.decode(token) for token in tokens]

    @staticmethod
    def to_decoded_cursor(
        document: Any,
        sort_by: str,
        accessors: Mapping[str, FieldAccessor] | None = None,
    ) -> DecodedPaginationCursor:
        """Build the cursor of a document for a given sort field.

        Args:
            document: Raw document or hydrated object
            sort_by: Sort field the cursor refers to
            accessors: Field accessor map of the document type; fields
                without an accessor are read by dotted path

        Returns:
            Decoded cursor for the document
        """
        accessors = accessors or {}

        def read(field: str) -> Any:
            accessor = accessors.get(field)
            return accessor(document) if accessor else get_field_value(document, field)

        return DecodedPaginationCursor(id=str(read("id")), cursor_value=read(sort_by))

    @staticmethod
    def document_to_cursor(
        document: Any,
        sort_by: str,
        accessors: Mapping[str, FieldAccessor] | None = None,
    ) -> str:
        """Encode the cursor of a document for a given sort field."""
        decoded = PaginationCursorProvider.to_decoded_cursor(document, sort_by, accessors)
        return PaginationCursorProvider.encode(decoded.id, decoded.cursor_value)

    @staticmethod
    def documents_to_cursors(
        documents: Iterable[Any],
        sort_by: str,
        accessors: Mapping[str, FieldAccessor] | None = None,
    ) -> list[str]:
        return [PaginationCursorProvider.document_to_cursor(document, sort_by, accessors) for document in documents]

    @staticmethod
    def _serialize_value(value: Any) -> str:
        """Serialize a cursor value with its type tag."""
        match value:
            case None:
                return ""
            case datetime():
                fmt = DATETIME_FORMAT_WITH_OFFSET if value.utcoffset() is not None else DATETIME_FORMAT
                return DATETIME_PREFIX + value.strftime(fmt)
            case bool():
                return _BOOL_PREFIX + ("1" if value else "0")
            case int():
                return f"{_INT_PREFIX}{value}"
            case float():
                return f"{_FLOAT_PREFIX}{value!r}"
            case str() if value == "" or value.startswith("\\"):
                return _STR_PREFIX + value
            case str():
                return value
            case _:
                msg = "The cursor value must be a scalar, a datetime or None"
                raise DomainInvariantError(msg, details={"type": type(value).__name__})

    @staticmethod
    def _deserialize_value(serialized: str) -> Any:
        """Reverse :meth:`_serialize_value`."""
        if serialized == "":
            return None
        try:
            if serialized.startswith(DATETIME_PREFIX):
                raw = serialized.removeprefix(DATETIME_PREFIX)
                fmt = DATETIME_FORMAT if len(raw) == 26 else DATETIME_FORMAT_WITH_OFFSET
                return datetime.strptime(raw, fmt)
            if serialized.startswith(_STR_PREFIX):
                return serialized.removeprefix(_STR_PREFIX)
            if serialized.startswith(_INT_PREFIX):
                return int(serialized.removeprefix(_INT_PREFIX))
            if serialized.startswith(_FLOAT_PREFIX):
                return float(serialized.removeprefix(_FLOAT_PREFIX))
            if serialized.startswith(_BOOL_PREFIX):
                return serialized.removeprefix(_BOOL_PREFIX) == "1"
        except ValueError as e:
            msg = f"Invalid pagination cursor value: {e}"
            raise InvalidInputError(msg, field="cursor") from e
        return serialized


__all__ = [
    "DATETIME_FORMAT",
    "DATETIME_PREFIX",
    "ID_SEPARATOR",
    "DecodedPaginationCursor",
    "FieldAccessor",
    "PaginationCursorProvider",
]
