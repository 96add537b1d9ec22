"""Application lifecycle management for the Peerspace server.

Builds the realtime components on startup, stores them on ``app.state`` and
starts the presence broadcast loop; on shutdown it cancels every tracked
task and releases the URL adapter's HTTP client.
"""

import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI

from ..config import get_config
from ..realtime.broadcast_scheduler import BroadcastScheduler
from ..realtime.connection_lifecycle import ConnectionLifecycleManager
from ..realtime.connection_manager import ConnectionManager
from ..realtime.message_handler_factory import MessageHandlerFactory
from ..realtime.peer_registry import PeerRegistry
from ..realtime.signaling_relay import SignalingRelay
from ..services.url_generation import build_url_adapter
from ..structured_logging.enhanced_logging_config import get_logger, log_exception_once
from .task_registry import TaskRegistry

logger = get_logger("peerspace.app.lifespan")

SHUTDOWN_TIMEOUT = 5.0


def initialize_realtime_services(app: FastAPI) -> None:
    """Create the realtime components and attach them to app.state."""
    config = get_config()

    task_registry = TaskRegistry()
    registry = PeerRegistry.from_config(config.presence)
    connection_manager = ConnectionManager(send_timeout=config.presence.send_timeout)
    relay = SignalingRelay(registry, connection_manager)
    url_adapter = build_url_adapter(config.url_generation)
    lifecycle = ConnectionLifecycleManager(
        registry,
        connection_manager,
        relay,
        url_adapter,
        task_registry,
        max_username_length=config.presence.max_username_length,
        url_generation_timeout=config.url_generation.timeout,
    )

    app.state.config = config
    app.state.task_registry = task_registry
    app.state.peer_registry = registry
    app.state.connection_manager = connection_manager
    app.state.url_adapter = url_adapter
    app.state.lifecycle_manager = lifecycle
    app.state.message_handler_factory = MessageHandlerFactory(lifecycle)
    app.state.broadcast_scheduler = BroadcastScheduler(
        registry, connection_manager, interval=config.presence.broadcast_interval
    )


async def shutdown_realtime_services(app: FastAPI) -> None:
    """Stop the broadcast loop, cancel tracked tasks and close the adapter."""
    await app.state.broadcast_scheduler.stop()
    await app.state.task_registry.shutdown_all(timeout=SHUTDOWN_TIMEOUT)
    await app.state.url_adapter.aclose()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup failures (for example a URL provider without credentials)
    propagate so the server refuses to start.
    """
    logger.info("Starting Peerspace server...")

    initialize_realtime_services(app)
    app.state.broadcast_scheduler.start(app.state.task_registry)
    logger.info(
        "Peerspace server started",
        broadcast_interval=app.state.broadcast_scheduler.interval,
        url_provider=app.state.url_adapter.name,
    )
    yield

    logger.info("Shutting down Peerspace server...")
    try:
        await shutdown_realtime_services(app)
    except asyncio.CancelledError as e:
        logger.warning("Shutdown interrupted", error=str(e), error_type=type(e).__name__)
        raise
    except (AttributeError, RuntimeError, OSError) as e:
        log_exception_once(logger, "error", "Shutdown failure", exc=e, exc_info=True)
    logger.info("Peerspace server shutdown complete")
