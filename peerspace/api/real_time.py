"""
Real-time communication API endpoints for the Peerspace server.

This module exposes the WebSocket endpoint every client connects to.
"""

from fastapi import APIRouter, WebSocket

from ..realtime.websocket_handler import handle_websocket_connection
from ..structured_logging.enhanced_logging_config import get_logger

logger = get_logger(__name__)

realtime_router = APIRouter(tags=["realtime"])


@realtime_router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket) -> None:
    """WebSocket endpoint for presence, chat, signaling and URL requests."""
    state = websocket.app.state
    lifecycle = getattr(state, "lifecycle_manager", None)
    if lifecycle is None:
        await websocket.accept()
        await websocket.send_json({"type": "error", "message": "Service temporarily unavailable"})
        await websocket.close(code=1013)
        return

    logger.debug("WebSocket connection attempt", client=str(websocket.client))
    await handle_websocket_connection(
        websocket,
        lifecycle,
        state.message_handler_factory,
        max_message_size=state.config.presence.max_message_size,
    )
