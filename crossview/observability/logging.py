"""Structured logging configuration using structlog.

crossview's own modules log through structlog. Records from the standard
``logging`` tree (uvicorn, kubernetes_asyncio, httpx) go to the same stream
so one process writes one log.
"""

from __future__ import annotations

import logging
import sys
from typing import cast

import structlog
from structlog.typing import FilteringBoundLogger, Processor

# Library loggers that are chatty at INFO (per-request lines, token refresh).
_QUIET_LOGGERS: tuple[str, ...] = ("kubernetes_asyncio", "httpx", "urllib3")


def setup_logging(level: str = "info", fmt: str = "json") -> None:
    """Configure structlog for JSON (or console) output to stderr."""
    log_level = getattr(logging, level.upper(), logging.INFO)

    renderer: Processor
    if fmt == "console":
        renderer = structlog.dev.ConsoleRenderer(colors=False)
    else:
        renderer = structlog.processors.JSONRenderer()

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

    logging.basicConfig(
        level=log_level,
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))


def get_logger(component: str) -> FilteringBoundLogger:
    """Get a logger bound with a component name."""
    return cast(FilteringBoundLogger, structlog.get_logger(component=component))
