"""Logging infrastructure.

Basic usage:
    import logging

    logger = logging.getLogger(__name__)
    logger.info("Cache invalidated", extra={"document_types": ["Event"]})

    # Lazy evaluation for expensive debug output
    from docquery.infra.logging import get_lazy_logger

    lazy_logger = get_lazy_logger(__name__)
    lazy_logger.debug(lambda: f"Store query: {query.to_dict()}")
"""

from docquery.infra.logging.config import configure_logging, setup_logging
from docquery.infra.logging.formatters import JSONFormatter
from docquery.infra.logging.lazy import LazyLoggerAdapter, get_lazy_logger

__all__ = [
    "JSONFormatter",
    "LazyLoggerAdapter",
    "configure_logging",
    "get_lazy_logger",
    "setup_logging",
]
