"""Logging and observability configuration using Pydantic Logfire.

All modules use Python's standard logging library (logging.getLogger(__name__)),
and Logfire captures and enriches these logs when a token is configured.

Standard usage:
    import logging
    logger = logging.getLogger(__name__)
    logger.info("Message", extra={"key": "value"})

Structured logging utilities:
    log_with_context(logger, "info", "Message", product_id="p1", entry_id="abc")
    log_with_entry_context(logger, "error", "Sync failed", entry, error="timeout")
"""

import logging
from typing import TYPE_CHECKING

import logfire
from fastapi import FastAPI

from bestbefore.core.config import settings


if TYPE_CHECKING:
    from bestbefore.domain.sync import QueueEntry


def configure_logfire() -> None:
    """Configure Pydantic Logfire with token from environment."""
    logfire.configure(
        token=settings.logfire_token,
        service_name="bestbefore",
        service_version="0.1.0",
        send_to_logfire="if-token-present",
    )

    logger = logging.getLogger(__name__)
    logger.info("Logfire configured successfully")


def instrument_fastapi(app: FastAPI) -> None:
    """Add Logfire instrumentation to FastAPI application."""
    logfire.instrument_fastapi(app)
    logger = logging.getLogger(__name__)
    logger.info("FastAPI instrumentation configured")


def span(name: str) -> logfire.LogfireSpan:
    """Create a custom span for service layer functions.

    Usage:
        with span("sync_queue.replay"):
            ...
    """
    return logfire.span(name)


def log_with_context(
    logger: logging.Logger,
    level: str,
    message: str,
    **context: object,
) -> None:
    """Log a message with structured context fields.

    Args:
        logger: Logger instance to use
        level: Log level ("debug", "info", "warning", "error", "critical")
        message: Log message
        **context: Additional context fields (entry_id, product_id, action, etc.)
    """
    log_method = getattr(logger, level.lower())
    log_method(message, extra=context)


def log_with_user_context(
    logger: logging.Logger,
    level: str,
    message: str,
    user_id: str | None = None,
    **extra: object,
) -> None:
    """Log a message with user context.

    Usage:
        log_with_user_context(logger, "info", "Queue replayed", user_id="123", processed=4)
    """
    context = {"user_id": user_id, **extra} if user_id else extra
    log_with_context(logger, level, message, **context)


def log_with_entry_context(
    logger: logging.Logger,
    level: str,
    message: str,
    entry: "QueueEntry",
    **extra: object,
) -> None:
    """Log a message about one sync-queue entry with its id, action and table attached."""
    log_with_context(
        logger,
        level,
        message,
        entry_id=entry.id,
        action=str(entry.action),
        table=entry.table,
        **extra,
    )
