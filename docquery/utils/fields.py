"""Dotted-path field access on raw documents and hydrated objects."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

_MISSING = object()


def get_field_value(document: Any, path: str, default: Any = None) -> Any:
    """Read a possibly dotted field path from a mapping or an object.

    Args:
        document: Raw document (mapping) or hydrated object
        path: Field name, e.g. ``"date"`` or ``"location.city"``
        default: Value returned when any segment is missing

    Returns:
        The field value, or ``default``

    Example:
        >>> get_field_value({"speaker": {"country": "IT"}}, "speaker.country")
        'IT'
    """
    current = document
    for segment in path.split("."):
        if isinstance(current, Mapping):
            current = current.get(segment, _MISSING)
        else:
            current = getattr(current, segment, _MISSING)
        if current is _MISSING:
            return default
    return current


def has_field(document: Any, path: str) -> bool:
    """Whether every segment of ``path`` is present on ``document``."""
    return get_field_value(document, path, _MISSING) is not _MISSING


__all__ = ["get_field_value", "has_field"]
