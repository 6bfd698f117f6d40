"""Main CLI entry point for docquery commands."""

import click

from docquery.cli.commands import cache, cursor
from docquery.infra.logging import setup_logging


@click.group()
@click.version_option(version="0.1.0", prog_name="docquery")
@click.pass_context
def cli(ctx: click.Context) -> None:
    """docquery CLI - pagination cursor and query cache tools.

    \b
    Command Groups:
      cursor     Encode and decode pagination cursors
      cache      Query cache invalidation

    \b
    Quick Start:
      docquery cursor encode 65a1f0 2025-01-15T10:30:00 --datetime
      docquery cursor decode NjVhMWYwfFxEYXRlVGltZToyMDI1LTAxLTE1IDEwOjMwOjAwLjAwMDAwMA==
      docquery cache invalidate Event Speaker
    """
    ctx.ensure_object(dict)


cli.add_command(cursor.cursor)
cli.add_command(cache.cache)


def main() -> None:
    """Entry point for CLI."""
    setup_logging()
    cli(obj={})


if __name__ == "__main__":
    main()
