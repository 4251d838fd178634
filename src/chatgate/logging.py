"""Structured logging setup."""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

from .errors import InvalidConfig

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}
_FORMATS = ("console", "json")


def setup_logging(level: str = "info", fmt: str = "console") -> None:
    """Configure structlog for the whole process."""
    normalized_level = level.strip().lower()
    if normalized_level not in _LEVELS:
        raise InvalidConfig(f"unknown log level: {level!r}")
    normalized_fmt = fmt.strip().lower()
    if normalized_fmt not in _FORMATS:
        raise InvalidConfig(f"unknown log format: {fmt!r}")

    renderer: Any
    if normalized_fmt == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(_LEVELS[normalized_level]),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.typing.FilteringBoundLogger:
    return structlog.get_logger(name)
