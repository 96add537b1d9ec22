"""
Test configuration and fixtures for the Peerspace test suite.
"""

import os
import random
from collections.abc import Generator
from unittest.mock import AsyncMock, Mock

import pytest

# Environment must be pinned before any config is loaded
os.environ.setdefault("LOGGING_ENVIRONMENT", "unit_test")
os.environ.setdefault("SERVER_HOST", "127.0.0.1")
os.environ.setdefault("SERVER_PORT", "8080")
os.environ.setdefault("URL_GENERATION_PROVIDER", "disabled")

from peerspace.app.task_registry import TaskRegistry  # noqa: E402
from peerspace.config import reset_config  # noqa: E402
from peerspace.realtime.connection_lifecycle import ConnectionLifecycleManager  # noqa: E402
from peerspace.realtime.connection_manager import ConnectionManager  # noqa: E402
from peerspace.realtime.peer_registry import PeerRegistry  # noqa: E402
from peerspace.realtime.signaling_relay import SignalingRelay  # noqa: E402
from peerspace.services.url_generation import PromptToUrlAdapter  # noqa: E402


@pytest.fixture(autouse=True)
def reset_config_singleton() -> Generator[None, None, None]:
    """Reset config singleton before and after each test."""
    reset_config()
    yield
    reset_config()


@pytest.fixture(autouse=True)
def deterministic_random_seed() -> Generator[None, None, None]:
    """Set deterministic random seed for reproducible tests."""
    random.seed(42)
    yield


@pytest.fixture
def make_websocket():
    """Factory for mock WebSockets with async accept/send_json."""

    def _make() -> AsyncMock:
        websocket = AsyncMock()
        websocket.send_json = AsyncMock()
        websocket.accept = AsyncMock()
        return websocket

    return _make


@pytest.fixture
def url_adapter() -> Mock:
    adapter = Mock(spec=PromptToUrlAdapter)
    adapter.name = "mock"
    adapter.generate_url = AsyncMock(return_value="https://example.com/video")
    adapter.aclose = AsyncMock()
    return adapter


@pytest.fixture
def peer_registry() -> PeerRegistry:
    return PeerRegistry(rng=random.Random(7))


@pytest.fixture
def connection_manager() -> ConnectionManager:
    return ConnectionManager()


@pytest.fixture
def task_registry() -> TaskRegistry:
    return TaskRegistry()


@pytest.fixture
def lifecycle(peer_registry, connection_manager, url_adapter, task_registry) -> ConnectionLifecycleManager:
    relay = SignalingRelay(peer_registry, connection_manager)
    return ConnectionLifecycleManager(
        peer_registry,
        connection_manager,
        relay,
        url_adapter,
        task_registry,
        max_username_length=16,
        url_generation_timeout=1.0,
    )
