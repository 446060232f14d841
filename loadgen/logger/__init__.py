"""Logger module for crud-loadgen.

Thin layer over structlog. Modules log event-named messages with keyword
fields and accept an injectable ``logger`` wherever one is useful:

    from loadgen.logger import Logger, session_logger

    session_logger.info("loadgen.run_start", base_url=url, stages=3)

``configure_logging`` is called once by the CLI; library users may call it
themselves or configure structlog directly.
"""

from __future__ import annotations

import logging
import sys

import structlog
from structlog.typing import FilteringBoundLogger

Logger = FilteringBoundLogger


def configure_logging(level: int | str = logging.INFO, *, json_output: bool = False) -> None:
    """Configure structlog for console (default) or JSON-lines output on stderr."""
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        if not isinstance(resolved, int):
            raise ValueError(f"unknown log level: {level!r}")
        level = resolved

    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


def get_logger(name: str) -> Logger:
    return structlog.get_logger(name)


# Shared logger instance for modules that just need basic console logging
session_logger: Logger = structlog.get_logger("loadgen")

__all__ = [
    "Logger",
    "configure_logging",
    "get_logger",
    "session_logger",
]
