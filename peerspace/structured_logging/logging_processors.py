"""
Logging processors for structlog event processing.

This module provides processors for redacting sensitive data and adding
correlation IDs to log entries.
"""

import re
import uuid
from typing import Any

# These patterns match whole words or specific suffixes/prefixes
_SENSITIVE_PATTERNS = [
    r"\bpassword\b",
    r"\btoken\b",
    r"\bsecret\b",
    r"_key\b",  # api_key, search_api_key, ...
    r"^key$",
    r"\bcredential\b",
    r"\bauthorization\b",
]

# Field names that look sensitive but never carry credentials
_SAFE_FIELDS = {
    "event_key",
    "message_key",
    "config_key",
}


def sanitize_sensitive_data(_logger: Any, _name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """
    Remove sensitive data from log entries.

    Adapter credentials are read from the environment and could otherwise end
    up in a log line through a config dump, so every field whose name looks
    like a credential is replaced with "[REDACTED]".

    Args:
        _logger: Logger instance (unused)
        _name: Logger name (unused)
        event_dict: Event dictionary to sanitize

    Returns:
        Sanitized event dictionary
    """

    def sanitize_dict(d: dict[str, Any]) -> dict[str, Any]:
        sanitized: dict[str, Any] = {}
        for key, value in d.items():
            if isinstance(value, dict):
                sanitized[key] = sanitize_dict(value)
                continue
            key_lower = str(key).lower()
            if key_lower in _SAFE_FIELDS:
                sanitized[key] = value
            elif any(re.search(pattern, key_lower) for pattern in _SENSITIVE_PATTERNS):
                sanitized[key] = "[REDACTED]"
            else:
                sanitized[key] = value
        return sanitized

    return sanitize_dict(event_dict)


def add_correlation_id(_logger: Any, _name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """
    Add correlation ID to log entries if not already present.

    Connection handlers bind their own correlation ID through contextvars, so
    this only fills the gap for log lines emitted outside of a connection.
    """
    if "correlation_id" not in event_dict:
        event_dict["correlation_id"] = str(uuid.uuid4())

    return event_dict
