"""Query cache commands."""

import sys

import click

from docquery.cli.utils import coro, error, info, success, warning
from docquery.core.settings import get_cache_settings
from docquery.infra.cache import create_query_cache


@click.group(name="cache")
def cache() -> None:
    """Query cache management commands."""


@cache.command()
@click.argument("document_types", nargs=-1, required=True)
@coro
async def invalidate(document_types: tuple[str, ...]) -> None:
    """Invalidate every cached query of DOCUMENT_TYPES."""
    settings = get_cache_settings()
    if settings.backend == "memory":
        warning("The memory backend is process-local; nothing outside this process is affected")

    info(f"Invalidating {', '.join(document_types)} on the {settings.backend} backend...")
    try:
        query_cache = await create_query_cache(settings)
        try:
            await query_cache.invalidate(list(document_types))
        finally:
            await query_cache.close()
    except Exception as e:
        error(f"Failed to invalidate the query cache: {e}")
        sys.exit(1)

    success(f"Invalidated {len(document_types)} document type(s)")
