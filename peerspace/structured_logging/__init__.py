"""
Structured logging package for Peerspace.

This package provides structlog-based logging with contextvars, sensitive data
redaction and per-environment rotating log files.

All imports should use explicit paths like
'from peerspace.structured_logging.enhanced_logging_config import get_logger'.

The directory is named 'structured_logging' rather than 'logging' to avoid
shadowing Python's standard library logging module.
"""

__all__: list[str] = []
