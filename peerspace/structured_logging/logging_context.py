"""
Context management utilities for enhanced logging.

This module binds per-connection context (connection id, correlation id) into
structlog contextvars so every log line emitted while handling a connection
carries it automatically.
"""

import uuid
from typing import Any

import structlog
from structlog.contextvars import bind_contextvars, clear_contextvars


def bind_connection_context(
    connection_id: str | None = None,
    correlation_id: str | None = None,
    **kwargs,
) -> None:
    """
    Bind connection context to the current logging context.

    Args:
        connection_id: Id of the connection being served
        correlation_id: Unique correlation ID, generated when omitted
        **kwargs: Additional context variables
    """
    if correlation_id is None:
        correlation_id = str(uuid.uuid4())

    context_vars = {
        "correlation_id": correlation_id,
        "connection_id": connection_id,
        **kwargs,
    }
    context_vars = {k: v for k, v in context_vars.items() if v is not None}

    bind_contextvars(**context_vars)


def clear_connection_context() -> None:
    """Clear the current connection context from logging."""
    clear_contextvars()


def get_current_context() -> dict[str, Any]:
    """Get the current logging context."""
    try:
        return structlog.contextvars.get_contextvars()
    except (AttributeError, KeyError):
        return {}
