"""structlog setup for the API and CLI."""

from __future__ import annotations

import logging

import structlog


def configure_logging(log_format: str = "console", level: int = logging.INFO) -> None:
    """Configure structlog rendering.

    Args:
        log_format: "console" for human-readable output, "json" for one JSON
            object per line
        level: Minimum log level
    """
    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]
    if log_format == "json":
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=False,
    )
