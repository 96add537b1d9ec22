"""
Message Handler Factory for WebSocket message routing.

Maps each inbound ``type`` to a handler object, so adding a message type is
a matter of registering one more handler.
"""

from abc import ABC, abstractmethod
from typing import Any

from ..error_types import ErrorMessages, ErrorType, create_websocket_error_response
from ..structured_logging.enhanced_logging_config import get_logger
from .connection_lifecycle import ConnectionLifecycleManager

logger = get_logger(__name__)


class MessageHandler(ABC):
    """Abstract base class for message handlers."""

    def __init__(self, lifecycle: ConnectionLifecycleManager) -> None:
        self.lifecycle = lifecycle

    @abstractmethod
    async def handle(self, connection_id: str, data: Any) -> None:
        """
        Handle a specific message type.

        Args:
            connection_id: The sending connection
            data: The message payload
        """


class SetUsernameMessageHandler(MessageHandler):
    """Handler for setUsername messages."""

    async def handle(self, connection_id: str, data: Any) -> None:
        await self.lifecycle.set_name(connection_id, data)


class MoveMessageHandler(MessageHandler):
    """Handler for move messages."""

    async def handle(self, connection_id: str, data: Any) -> None:
        await self.lifecycle.move(connection_id, data)


class ChatMessageHandler(MessageHandler):
    """Handler for msg (chat) messages."""

    async def handle(self, connection_id: str, data: Any) -> None:
        await self.lifecycle.chat(connection_id, data)


class SignalMessageHandler(MessageHandler):
    """Handler for WebRTC signal messages."""

    async def handle(self, connection_id: str, data: Any) -> None:
        await self.lifecycle.signal(connection_id, data)


class GenerateUrlMessageHandler(MessageHandler):
    """Handler for generateURL requests; the reply arrives asynchronously."""

    async def handle(self, connection_id: str, data: Any) -> None:
        self.lifecycle.request_url(connection_id, data)


class MessageHandlerFactory:
    """Factory for creating and managing message handlers."""

    def __init__(self, lifecycle: ConnectionLifecycleManager):
        self.lifecycle = lifecycle
        self._handlers: dict[str, MessageHandler] = {
            "setUsername": SetUsernameMessageHandler(lifecycle),
            "move": MoveMessageHandler(lifecycle),
            "msg": ChatMessageHandler(lifecycle),
            "signal": SignalMessageHandler(lifecycle),
            "generateURL": GenerateUrlMessageHandler(lifecycle),
        }

    def register_handler(self, message_type: str, handler: MessageHandler) -> None:
        """
        Register a new message handler.

        Args:
            message_type: The message type to handle
            handler: The handler instance
        """
        self._handlers[message_type] = handler
        logger.debug("Registered handler for message type", message_type=message_type)

    def get_handler(self, message_type: str) -> MessageHandler | None:
        return self._handlers.get(message_type)

    async def handle_message(self, connection_id: str, message: dict[str, Any]) -> None:
        """
        Route a parsed inbound frame to its handler.

        Unknown types are answered with an invalid-command error to the
        sender only.

        Args:
            connection_id: The sending connection
            message: The frame, ``{"type": ..., "data": ...}``
        """
        message_type = message.get("type", "unknown")
        data = message.get("data")

        handler = self.get_handler(message_type)
        if handler:
            await handler.handle(connection_id, data)
            return

        logger.warning("Unknown message type", message_type=message_type, connection_id=connection_id)
        error_response = create_websocket_error_response(
            ErrorType.INVALID_COMMAND,
            f"Unknown message type: {message_type}",
            ErrorMessages.INVALID_COMMAND,
            {"message_type": message_type, "connection_id": connection_id},
        )
        await self.lifecycle.connection_manager.send_personal_message(connection_id, error_response)

    def get_supported_message_types(self) -> list[str]:
        return list(self._handlers.keys())
