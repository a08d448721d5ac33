"""
structlog setup for the match report service.

Every event is one JSON line on stdout. Request-scoped values (the request
id, plus the session id once a route knows it) live in structlog
contextvars, so events from the generator and the API clients carry them
without threading them through every call.
"""

from __future__ import annotations

import logging
from typing import Any

import structlog

from .config import settings

SERVICE_NAME = "match-report"


def resolve_log_level(level: str | None, environment: str) -> int:
    """``LOG_LEVEL`` if it names a level; else INFO in production, DEBUG elsewhere."""
    default = "INFO" if environment.lower() == "production" else "DEBUG"
    name = (level or default).strip().upper()
    return logging.getLevelNamesMapping().get(name, logging.INFO)


def configure_logging(level: int) -> None:
    # Third-party libraries (httpx, openai, uvicorn) still log through stdlib.
    logging.basicConfig(level=level)
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.add_log_level,
            structlog.processors.EventRenamer("message"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
    )


def bind_request_context(**values: Any) -> None:
    """Attach values to every event logged for the rest of this request."""
    structlog.contextvars.bind_contextvars(**values)


def clear_request_context() -> None:
    structlog.contextvars.clear_contextvars()


configure_logging(resolve_log_level(settings.log_level, settings.environment))

logger = structlog.get_logger().bind(service=SERVICE_NAME, environment=settings.environment)
