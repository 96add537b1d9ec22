"""
Centralized error types and constants for Peerspace.

Standardized error types and messages used for every ``error`` frame sent
over a WebSocket.
"""

from enum import Enum
from typing import Any


class ErrorType(Enum):
    """Standardized error types for consistent categorization."""

    # Frame validation
    INVALID_FORMAT = "invalid_format"
    INVALID_COMMAND = "invalid_command"
    MESSAGE_TOO_LARGE = "message_too_large"

    # System
    INTERNAL_ERROR = "internal_error"


def create_websocket_error_response(
    error_type: ErrorType,
    message: str,
    user_friendly: str | None = None,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """
    Create a standardized WebSocket error response.

    Args:
        error_type: The type of error
        message: Technical error message
        user_friendly: User-friendly error message (optional)
        details: Additional error details (optional)

    Returns:
        WebSocket error response dictionary
    """
    return {
        "type": "error",
        "error_type": error_type.value,
        "message": message,
        "user_friendly": user_friendly or message,
        "details": details or {},
    }


class ErrorMessages:
    """Common error messages for consistent client experience."""

    INVALID_FORMAT = "Invalid format provided"
    INVALID_COMMAND = "Invalid command"
    MESSAGE_TOO_LARGE = "Message too large"
    INTERNAL_ERROR = "An internal error occurred"
