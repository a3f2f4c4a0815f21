"""Structured logging configuration using structlog.

The REST server logs JSON lines. The CLI switches to structlog's console
renderer when stderr is a terminal, so progress events stay readable while
the evidence report goes to stdout.
"""

from __future__ import annotations

import logging
import sys
from typing import cast

import structlog
from structlog.typing import FilteringBoundLogger, Processor

# Libraries that log every HTTP request at INFO through stdlib logging.
_NOISY_LOGGERS = ("httpx", "httpcore")


def setup_logging(level: str = "info", *, json_output: bool = True) -> None:
    """Configure structlog output to stderr.

    Args:
        level: minimum level name (debug, info, warning, error).
        json_output: render JSON lines; otherwise use the console renderer.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    renderer: Processor = (
        structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer(colors=False)
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso", utc=True, key="ts"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))


def get_logger(component: str) -> FilteringBoundLogger:
    """Get a logger bound with a component name."""
    return cast(FilteringBoundLogger, structlog.get_logger(component=component))
