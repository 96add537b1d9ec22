"""
Configuration module for the Peerspace server.

Typed, validated configuration built on Pydantic BaseSettings.

Usage:
    from peerspace.config import get_config

    config = get_config()
    logger.info("Configuration loaded", host=config.server.host, port=config.server.port)
"""

import sys
import threading
from functools import lru_cache
from os import getenv

from .models import AppConfig

__all__ = ["get_config", "reset_config", "AppConfig"]

# Module-level config cache
_config_instance = None
_config_lock = threading.Lock()


def _is_test_mode() -> bool:
    """
    Detect if running in test environment.

    Returns:
        bool: True when pytest is loaded or has set its environment variables
    """
    if "pytest" in sys.modules:
        return True

    if getenv("PYTEST_CURRENT_TEST") or getenv("_PYTEST_RAISE"):
        return True

    return False


@lru_cache(maxsize=1)
def _get_config_cached() -> AppConfig:
    """
    Production config loader with caching.

    Returns:
        AppConfig: Cached application configuration
    """
    global _config_instance  # pylint: disable=global-statement
    with _config_lock:
        if _config_instance is None:
            _config_instance = AppConfig()
    return _config_instance


def get_config() -> AppConfig:
    """
    Get application configuration (singleton in production, fresh in tests).

    Configuration is loaded from environment variables and the .env file.
    Under pytest a fresh instance is built on every call so tests can tweak
    the environment with monkeypatch.

    Returns:
        AppConfig: The application configuration

    Raises:
        ValidationError: If configuration is invalid
    """
    if _is_test_mode():
        return AppConfig()
    return _get_config_cached()


def reset_config() -> None:
    """
    Reset the configuration cache.

    Forces the next get_config() call to reload from the environment.
    """
    global _config_instance  # pylint: disable=global-statement

    with _config_lock:
        _get_config_cached.cache_clear()
        _config_instance = None
