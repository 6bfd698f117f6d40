"""Pagination cursor commands."""

import json
import sys
from datetime import datetime

import click

from docquery.cli.utils import error
from docquery.core.exceptions import QueryError
from docquery.core.pagination import PaginationCursorProvider

_VALUE_PARSERS = {
    "string": str,
    "int": int,
    "float": float,
    "bool": lambda value: value.lower() in ("1", "true"),
    "datetime": datetime.fromisoformat,
    "null": lambda _value: None,
}


@click.group(name="cursor")
def cursor() -> None:
    """Encode and decode pagination cursors."""


@cursor.command()
@click.argument("document_id")
@click.argument("value")
@click.option(
    "--type",
    "value_type",
    type=click.Choice(sorted(_VALUE_PARSERS)),
    default="string",
    show_default=True,
    help="Type of the sort field value",
)
@click.option("--datetime", "is_datetime", is_flag=True, help="Shortcut for --type datetime (ISO 8601 value)")
def encode(document_id: str, value: str, value_type: str, is_datetime: bool) -> None:
    """Encode DOCUMENT_ID and its sort field VALUE into a cursor."""
    if is_datetime:
        value_type = "datetime"
    try:
        parsed = _VALUE_PARSERS[value_type](value)
    except ValueError as e:
        error(f"Cannot parse {value!r} as {value_type}: {e}")
        sys.exit(1)
    click.echo(PaginationCursorProvider.encode(document_id, parsed))


@cursor.command()
@click.argument("token")
def decode(token: str) -> None:
    """Decode a cursor TOKEN and print its id and value as JSON."""
    try:
        decoded = PaginationCursorProvider.decode(token)
    except QueryError as e:
        error(str(e))
        sys.exit(1)
    if decoded is None:
        error("Empty cursor")
        sys.exit(1)
    click.echo(json.dumps(decoded.to_dict()))
