"""
File logging setup for the structured logging system.

Creates one rotating file per log category under ``<log_base>/<environment>/``,
plus warnings/errors aggregators and a console mirror. Category files only
receive records from the loggers they are meant for.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

import structlog

logger = structlog.get_logger(__name__)

# log file name -> logger name prefixes routed to it
LOG_CATEGORIES: dict[str, list[str]] = {
    "server": ["peerspace.app", "peerspace.api", "peerspace.config", "peerspace.main", "uvicorn"],
    "realtime": ["peerspace.realtime"],
    "services": ["peerspace.services"],
}


class LoggerNameFilter(logging.Filter):
    """
    Filter that only allows logs from loggers matching specified prefixes.

    Prevents records from one subsystem landing in another subsystem's file.
    """

    def __init__(self, allowed_prefixes: list[str]) -> None:
        super().__init__()
        self.allowed_prefixes = allowed_prefixes

    def filter(self, record: logging.LogRecord) -> bool:
        logger_name = record.name
        for prefix in self.allowed_prefixes:
            if logger_name == prefix or logger_name.startswith(f"{prefix}."):
                return True
        return False


def resolve_log_base(log_base: str) -> Path:
    """
    Resolve log_base path to absolute path relative to project root.

    The project root is the nearest directory (cwd or a parent) holding a
    pyproject.toml; the cwd is used when none is found.
    """
    log_path = Path(log_base)
    if log_path.is_absolute():
        return log_path

    current_dir = Path.cwd()
    for parent in [current_dir, *current_dir.parents]:
        if (parent / "pyproject.toml").exists():
            return parent / log_path
    return current_dir / log_path


def convert_max_size_to_bytes(max_size: str | int) -> int:
    """Convert a size such as "100MB", "512KB" or "2048B" to bytes."""
    if isinstance(max_size, int):
        return max_size
    value = max_size.strip().upper()
    if value.endswith("MB"):
        return int(value[:-2]) * 1024 * 1024
    if value.endswith("KB"):
        return int(value[:-2]) * 1024
    if value.endswith("B"):
        return int(value[:-1])
    return int(value)


def _create_rotating_handler(log_path: Path, max_bytes: int, backup_count: int) -> logging.Handler:
    """
    Create a rotating file handler, falling back to a NullHandler.

    A log directory that cannot be created must not stop the server.
    """
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handler: logging.Handler = RotatingFileHandler(
            log_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
        )
    except OSError as e:
        print(f"Warning: could not open log file {log_path}: {e}", file=sys.stderr)
        return logging.NullHandler()
    # structlog has already rendered timestamp, level and logger name
    handler.setFormatter(logging.Formatter("%(message)s"))
    return handler


def setup_enhanced_file_logging(environment: str, log_config: dict[str, Any], log_level: str) -> list[logging.Handler]:
    """
    Attach category, aggregator and console file handlers.

    Args:
        environment: Environment name, used as the log sub-directory
        log_config: Logging section of the application config
        log_level: Minimum level for category loggers

    Returns:
        The handlers that were attached
    """
    env_log_dir = resolve_log_base(log_config.get("log_base", "logs")) / environment
    rotation = log_config.get("rotation", {})
    max_bytes = convert_max_size_to_bytes(rotation.get("max_size", "100MB"))
    backup_count = int(rotation.get("backup_count", 5))
    level = getattr(logging, str(log_level).upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    handlers: list[logging.Handler] = []

    for log_file, prefixes in LOG_CATEGORIES.items():
        handler = _create_rotating_handler(env_log_dir / f"{log_file}.log", max_bytes, backup_count)
        handler.addFilter(LoggerNameFilter(prefixes))
        root_logger.addHandler(handler)
        handlers.append(handler)

    for log_file, aggregate_level in (("warnings", logging.WARNING), ("errors", logging.ERROR)):
        handler = _create_rotating_handler(env_log_dir / f"{log_file}.log", max_bytes, backup_count)
        handler.setLevel(aggregate_level)
        root_logger.addHandler(handler)
        handlers.append(handler)

    console_handler = _create_rotating_handler(env_log_dir / "console.log", max_bytes, backup_count)
    console_handler.setLevel(level)
    root_logger.addHandler(console_handler)
    handlers.append(console_handler)

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(logging.Formatter("%(message)s"))
    stream_handler.setLevel(level)
    root_logger.addHandler(stream_handler)
    handlers.append(stream_handler)

    logger.debug("File logging configured", log_dir=str(env_log_dir), handler_count=len(handlers))
    return handlers
