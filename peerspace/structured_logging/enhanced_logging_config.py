"""
Enhanced structlog-based logging configuration for Peerspace.

This is the main entry point for the logging system: it configures structlog
processors (redaction, contextvars, correlation IDs), the renderer selected
by configuration, and the file handlers for the current environment.
"""

import json
import logging
from typing import Any, cast

import structlog
from structlog.contextvars import merge_contextvars
from structlog.stdlib import BoundLogger, LoggerFactory

from peerspace.structured_logging.logging_file_setup import setup_enhanced_file_logging
from peerspace.structured_logging.logging_processors import add_correlation_id, sanitize_sensitive_data

# Infrastructure code may use structlog.get_logger() directly; every other
# module goes through get_logger() below.
logger = structlog.get_logger(__name__)


class _LoggingState:
    """State container for logging initialization to avoid global statements."""

    initialized: bool = False
    signature: str | None = None
    handlers: list[logging.Handler] = []


_logging_state = _LoggingState()


def _select_renderer(log_format: str) -> Any:
    """Pick the final structlog renderer for the configured format."""
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    if log_format == "colored":
        return structlog.dev.ConsoleRenderer(colors=True)
    return structlog.processors.KeyValueRenderer(key_order=["timestamp", "level", "logger", "event"])


def configure_enhanced_structlog(
    environment: str = "local",
    log_level: str = "INFO",
    log_config: dict[str, Any] | None = None,
) -> None:
    """
    Configure structlog with redaction, contextvars and file output.

    Args:
        environment: Environment name (log sub-directory)
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_config: Logging configuration dictionary
    """
    log_config = log_config or {}

    base_processors = [
        # Security first - redact credentials
        sanitize_sensitive_data,
        # Bound connection context must win over a generated correlation id
        merge_contextvars,
        add_correlation_id,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if not log_config.get("disable_logging", False):
        _logging_state.handlers = setup_enhanced_file_logging(environment, log_config, log_level)
    else:
        logging.getLogger().setLevel(logging.CRITICAL + 1)

    structlog.configure(
        processors=base_processors + [_select_renderer(log_config.get("format", "human"))],
        context_class=dict,
        logger_factory=LoggerFactory(),
        wrapper_class=BoundLogger,
        cache_logger_on_first_use=False,
    )


def _remove_installed_handlers() -> None:
    """Detach and close handlers installed by a previous setup."""
    root_logger = logging.getLogger()
    for handler in _logging_state.handlers:
        root_logger.removeHandler(handler)
        handler.close()
    _logging_state.handlers = []


def setup_enhanced_logging(config: dict[str, Any], *, force_reconfigure: bool = False) -> None:
    """
    Set up enhanced logging from the application configuration.

    Args:
        config: Application configuration dictionary (see AppConfig.to_dict)
        force_reconfigure: When True, tear down existing handlers before reconfiguring
    """
    config_signature = json.dumps(config, sort_keys=True, default=str)

    if _logging_state.initialized and not force_reconfigure:
        get_logger("peerspace.structured_logging.setup").debug(
            "setup_enhanced_logging skipped; logging system already initialized",
            config_signature=_logging_state.signature,
        )
        return

    if _logging_state.initialized:
        _remove_installed_handlers()

    logging_config = config.get("logging", {})
    environment = logging_config.get("environment", "local")
    log_level = logging_config.get("level", "INFO")

    configure_enhanced_structlog(environment, log_level, logging_config)

    if not logging_config.get("disable_logging", False):
        _configure_enhanced_uvicorn_logging()
        get_logger("peerspace.structured_logging.enhanced").info(
            "Enhanced logging system initialized",
            environment=environment,
            log_level=log_level,
            log_format=logging_config.get("format", "human"),
            log_base=logging_config.get("log_base", "logs"),
        )

    _logging_state.initialized = True
    _logging_state.signature = config_signature


def _configure_enhanced_uvicorn_logging() -> None:
    """Route uvicorn's own loggers through the root handlers."""
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uvicorn_logger = logging.getLogger(name)
        uvicorn_logger.handlers = []
        uvicorn_logger.propagate = True

    get_logger("uvicorn.enhanced").debug("Enhanced uvicorn logging configured")


def get_logger(name: str) -> Any:  # Returns BoundLogger but typed as Any for flexibility
    """
    Get a structlog logger with the specified name.

    This is the public API for obtaining loggers. All application code
    should use this function rather than calling structlog.get_logger()
    directly.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured structlog logger instance
    """
    return structlog.get_logger(name)


def log_exception_once(
    bound_logger: BoundLogger,
    level: str,
    message: str,
    *,
    exc: Exception | None = None,
    mark_logged: bool = True,
    **kwargs: Any,
) -> None:
    """
    Log an exception once, respecting exceptions that have already been logged.

    Args:
        bound_logger: Structlog bound logger instance.
        level: Logging level to use (for example, "error" or "warning").
        message: Log message to emit.
        exc: Optional exception to include in the log entry.
        mark_logged: When True, mark the exception as logged to prevent duplicates.
        **kwargs: Additional key-value pairs for structured logging.
    """
    if exc is not None:
        if getattr(exc, "already_logged", False) or getattr(exc, "_already_logged", False):
            return
        kwargs.setdefault("error_type", type(exc).__name__)
        kwargs.setdefault("error", str(exc))

    log_method = getattr(bound_logger, level.lower(), bound_logger.error)
    log_method(message, **kwargs)

    if exc is not None and mark_logged:
        marker = getattr(exc, "mark_logged", None)
        if callable(marker):
            marker()
        else:
            cast(Any, exc)._already_logged = True
