"""Shared helpers."""

from docquery.utils.fields import get_field_value, has_field
from docquery.utils.retry import RetryError, RetryStrategy, retry

__all__ = ["RetryError", "RetryStrategy", "get_field_value", "has_field", "retry"]
