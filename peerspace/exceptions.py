"""
Exception hierarchy for the Peerspace server.

Domain errors carry an ErrorContext and log themselves when raised so that
the failure is recorded even if a caller only converts it into a client
response.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from .structured_logging.enhanced_logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class ErrorContext:
    """Contextual information for error reporting and debugging."""

    connection_id: str | None = None
    event_type: str | None = None
    request_id: str | None = None
    timestamp: datetime = field(default_factory=datetime.now)
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert context to dictionary for logging."""
        return {
            "connection_id": self.connection_id,
            "event_type": self.event_type,
            "request_id": self.request_id,
            "timestamp": self.timestamp.isoformat(),
            "metadata": self.metadata,
        }


class PeerspaceError(Exception):
    """
    Base exception for all Peerspace errors.

    Provides structured error handling with context and metadata.
    """

    def __init__(
        self,
        message: str,
        context: ErrorContext | None = None,
        details: dict[str, Any] | None = None,
        user_friendly: str | None = None,
    ):
        """
        Initialize a Peerspace error.

        Args:
            message: Technical error message
            context: Error context information
            details: Additional error details
            user_friendly: User-friendly error message
        """
        super().__init__(message)
        self.message = message
        self.context = context or ErrorContext()
        self.details = details or {}
        self.user_friendly = user_friendly or message
        self.timestamp = datetime.now()
        self._already_logged = False

        self._log_error()

    def _log_error(self) -> None:
        logger.error(
            "Peerspace error occurred",
            error_type=self.__class__.__name__,
            message=self.message,
            context=self.context.to_dict(),
            details=self.details,
        )

    def mark_logged(self) -> None:
        """Mark this error as logged so log_exception_once skips it."""
        self._already_logged = True

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for responses."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "user_friendly": self.user_friendly,
            "context": self.context.to_dict(),
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
        }


class ConfigurationError(PeerspaceError):
    """Configuration and setup errors."""

    def __init__(self, message: str, context: ErrorContext | None = None, config_key: str | None = None, **kwargs):
        super().__init__(message, context, **kwargs)
        self.config_key = config_key
        if config_key:
            self.details["config_key"] = config_key


class AdapterFailureError(PeerspaceError):
    """A prompt-to-URL adapter call failed or produced nothing usable."""

    def __init__(self, message: str, context: ErrorContext | None = None, adapter: str = "unknown", **kwargs):
        super().__init__(message, context, **kwargs)
        self.adapter = adapter
        self.details["adapter"] = adapter


class MalformedPayloadError(PeerspaceError):
    """An inbound event payload does not have the expected shape."""

    def __init__(
        self,
        message: str,
        context: ErrorContext | None = None,
        event_type: str | None = None,
        **kwargs,
    ):
        super().__init__(message, context, **kwargs)
        self.event_type = event_type
        if event_type:
            self.details["event_type"] = event_type

    def _log_error(self) -> None:
        # Client mistakes are expected traffic, not server errors
        logger.debug(
            "Malformed payload",
            message=self.message,
            context=self.context.to_dict(),
            details=self.details,
        )
