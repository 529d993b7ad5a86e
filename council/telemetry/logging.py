"""Structured logging configuration for the council.

Configures structlog with JSON output in production and a human-readable
console renderer in development. FallbackManager.route_with_fallback binds
role/model context variables so every later log line in the same context
carries them.

Log format (production):
    {
        "timestamp": "2026-02-17T10:30:45.123456Z",
        "level": "info",
        "logger": "council.routing.router",
        "event": "router.route_selected",
        "role": "implementer",
        "model": "sonnet-4.5",
        "provider": "anthropic"
    }
"""

from __future__ import annotations

import logging
import sys

import structlog
from structlog.types import Processor

from council.config import Settings


def configure_logging(
    *,
    json_logs: bool = False,
    log_level: str = "INFO",
) -> None:
    """Configure structured logging for the process.

    Args:
        json_logs: Use JSON format (True for production, False for dev)
        log_level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]

    if json_logs:
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = shared_processors + [
            structlog.dev.ConsoleRenderer(
                colors=True,
                exception_formatter=structlog.dev.RichTracebackFormatter(),
            ),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def configure_from_settings(settings: Settings) -> None:
    """Configure logging from process settings."""
    configure_logging(json_logs=settings.json_logs, log_level=settings.log_level)


# ------------------------------------------------------------------ #
# Context Binding Helpers
# ------------------------------------------------------------------ #


def bind_route_context(role: str, model: str | None = None) -> None:
    """Bind routing context to logs for the current request.

    Args:
        role: Logical role the work is routed for
        model: Selected model, once known
    """
    structlog.contextvars.bind_contextvars(role=role)
    if model is not None:
        structlog.contextvars.bind_contextvars(model=model)


def clear_context() -> None:
    """Clear all context variables (useful for testing)."""
    structlog.contextvars.clear_contextvars()
