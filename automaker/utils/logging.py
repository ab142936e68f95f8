"""Logging configuration using structlog."""

import logging
import sys
from pathlib import Path
from typing import Any, TextIO

import structlog

from automaker.config import settings


def configure_logging(
    log_level: str | None = None,
    log_to_file: bool = True,
    stream: TextIO | None = None,
) -> None:
    """Configure structured logging for the application."""
    level = (log_level or settings.log_level).upper()
    stream = stream or sys.stdout

    handlers: list[logging.Handler] = [logging.StreamHandler(stream)]
    if log_to_file:
        # Relative log directories are resolved against the working directory
        log_dir = Path(settings.log_directory)
        log_dir.mkdir(parents=True, exist_ok=True)
        handlers.append(
            logging.FileHandler(log_dir / settings.log_file_name, encoding="utf-8")
        )

    # Set up standard library logging
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, level, logging.INFO),
        handlers=handlers,
        force=True,
    )

    # Configure structlog
    processors: list[Any] = [
        # Picks up the request id bound by the API middleware
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    # Add renderer based on format
    if settings.log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=stream.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)
