"""
WebSocket handler for Peerspace real-time communication.

Runs the receive loop of one connection: parse each frame, route it through
the MessageHandlerFactory, answer frame-level problems with an ``error``
frame, and always tear the peer down when the loop ends.
"""

import json
from typing import Any

from fastapi import WebSocket, WebSocketDisconnect

from ..error_types import ErrorMessages, ErrorType, create_websocket_error_response
from ..structured_logging.enhanced_logging_config import get_logger
from ..structured_logging.logging_context import bind_connection_context, clear_connection_context
from .connection_lifecycle import ConnectionLifecycleManager
from .message_handler_factory import MessageHandlerFactory

logger = get_logger(__name__)

DEFAULT_MAX_MESSAGE_SIZE = 65536


async def _send_error(
    lifecycle: ConnectionLifecycleManager,
    connection_id: str,
    error_type: ErrorType,
    message: str,
    user_friendly: str,
    details: dict[str, Any] | None = None,
) -> bool:
    """Send an error frame to one connection; returns whether it was delivered."""
    error_response = create_websocket_error_response(
        error_type, message, user_friendly, {"connection_id": connection_id, **(details or {})}
    )
    delivery_status = await lifecycle.connection_manager.send_personal_message(connection_id, error_response)
    return bool(delivery_status["success"])


def parse_frame(raw: str) -> dict[str, Any]:
    """
    Parse one inbound frame.

    Raises:
        json.JSONDecodeError: If the frame is not JSON
        ValueError: If the frame is not an object with a string ``type``
    """
    message = json.loads(raw)
    if not isinstance(message, dict):
        raise ValueError("Frame must be a JSON object")
    if not isinstance(message.get("type"), str):
        raise ValueError("Frame must have a string 'type'")
    return message


async def _handle_websocket_message_loop(
    websocket: WebSocket,
    connection_id: str,
    lifecycle: ConnectionLifecycleManager,
    message_handler_factory: MessageHandlerFactory,
    max_message_size: int,
) -> None:
    """Handle the main WebSocket message loop."""
    while True:
        try:
            raw = await websocket.receive_text()

            if len(raw.encode("utf-8")) > max_message_size:
                logger.warning("Message too large", connection_id=connection_id, size=len(raw))
                await _send_error(
                    lifecycle,
                    connection_id,
                    ErrorType.MESSAGE_TOO_LARGE,
                    f"Message exceeds {max_message_size} bytes",
                    ErrorMessages.MESSAGE_TOO_LARGE,
                    {"max_message_size": max_message_size},
                )
                continue

            message = parse_frame(raw)
            await message_handler_factory.handle_message(connection_id, message)

        except json.JSONDecodeError:
            logger.warning("Invalid JSON from peer", connection_id=connection_id)
            await _send_error(
                lifecycle, connection_id, ErrorType.INVALID_FORMAT, "Invalid JSON format", ErrorMessages.INVALID_FORMAT
            )

        except WebSocketDisconnect:
            logger.info("WebSocket disconnected", connection_id=connection_id)
            break

        except ValueError as e:
            logger.warning("Invalid frame from peer", connection_id=connection_id, error=str(e))
            await _send_error(lifecycle, connection_id, ErrorType.INVALID_FORMAT, str(e), ErrorMessages.INVALID_FORMAT)

        except RuntimeError as e:
            error_message = str(e)
            if "WebSocket is not connected" in error_message or 'Need to call "accept" first' in error_message:
                logger.warning(
                    "WebSocket connection lost (not connected)", connection_id=connection_id, error=error_message
                )
                break
            logger.error(
                "Error handling WebSocket message", connection_id=connection_id, error=error_message, exc_info=True
            )
            await _send_error(
                lifecycle,
                connection_id,
                ErrorType.INTERNAL_ERROR,
                f"Internal server error: {error_message}",
                ErrorMessages.INTERNAL_ERROR,
                {"error_type": type(e).__name__},
            )

        except Exception as e:  # pylint: disable=broad-exception-caught
            logger.error(
                "Error handling WebSocket message",
                connection_id=connection_id,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            delivered = await _send_error(
                lifecycle,
                connection_id,
                ErrorType.INTERNAL_ERROR,
                f"Internal server error: {str(e)}",
                ErrorMessages.INTERNAL_ERROR,
                {"error_type": type(e).__name__},
            )
            if not delivered and not lifecycle.connection_manager.is_connected(connection_id):
                break


async def _cleanup_connection(connection_id: str, lifecycle: ConnectionLifecycleManager) -> None:
    """Tear down the peer; never raises so the endpoint can always return."""
    try:
        await lifecycle.disconnect(connection_id)
    except Exception as e:  # pylint: disable=broad-exception-caught
        logger.error("Error disconnecting peer", connection_id=connection_id, error=str(e), exc_info=True)


async def handle_websocket_connection(
    websocket: WebSocket,
    lifecycle: ConnectionLifecycleManager,
    message_handler_factory: MessageHandlerFactory,
    max_message_size: int = DEFAULT_MAX_MESSAGE_SIZE,
) -> None:
    """
    Serve one WebSocket connection from accept to cleanup.

    Args:
        websocket: The WebSocket connection
        lifecycle: Lifecycle manager that owns the peer state
        message_handler_factory: Router for inbound frames
        max_message_size: Largest accepted frame in bytes
    """
    session = await lifecycle.connect(websocket)
    connection_id = session.connection_id
    bind_connection_context(connection_id=connection_id)

    try:
        if session.is_active:
            await _handle_websocket_message_loop(
                websocket, connection_id, lifecycle, message_handler_factory, max_message_size
            )
    finally:
        await _cleanup_connection(connection_id, lifecycle)
        clear_connection_context()
