"""Logging configuration.

Builds a dictConfig for the root logger with a single console handler,
either JSON Lines (for log aggregation) or plain text.
"""

from __future__ import annotations

import logging
import logging.config
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from docquery.core.settings.logs import LoggingSettings

logger = logging.getLogger(__name__)


def configure_logging(
    log_level: str = "INFO",
    json_logs: bool = True,
    *,
    service_name: str = "docquery",
) -> None:
    """Configure root logging with dictConfig.

    Args:
        log_level: Root logger level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        json_logs: Enable JSONL (JSON Lines) structured logging.
        service_name: Static ``service`` field added to JSON records.

    Example:
        configure_logging(log_level="DEBUG", json_logs=False)
    """
    if json_logs:
        formatter: dict[str, Any] = {
            "()": "docquery.infra.logging.formatters.JSONFormatter",
            "static": {"service": service_name},
        }
    else:
        formatter = {
            "format": "%(asctime)s - %(levelname)s - %(name)s - %(message)s",
            "datefmt": "%Y-%m-%d %H:%M:%S",
        }

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {"default": formatter},
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                    "stream": "ext://sys.stderr",
                },
            },
            "root": {"level": log_level.upper(), "handlers": ["console"]},
        }
    )
    logger.debug("Logging configured", extra={"log_level": log_level, "json_logs": json_logs})


def setup_logging(log_settings: LoggingSettings | None = None) -> None:
    """Configure logging from LoggingSettings (loaded from the environment if omitted)."""
    if log_settings is None:
        from docquery.core.settings import get_logging_settings

        log_settings = get_logging_settings()
    configure_logging(log_level=log_settings.level, json_logs=log_settings.json_logs)
