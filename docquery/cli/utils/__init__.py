"""CLI utilities for running async operations and formatting output."""

from docquery.cli.utils.async_runner import coro
from docquery.cli.utils.formatters import error, info, success, warning

__all__ = [
    "coro",
    "error",
    "info",
    "success",
    "warning",
]
