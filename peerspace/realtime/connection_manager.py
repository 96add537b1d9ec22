"""
Transport-level connection table.

The ConnectionManager owns the open WebSockets. It assigns each accepted
socket its connection id, delivers personal messages and fans broadcasts out
concurrently. Every send to a socket goes through that socket's lock, so a
periodic snapshot and an event-driven frame never interleave on the wire.
A send that does not finish within the send timeout drops the connection,
so one client that stops reading cannot hold up everyone else.
"""

import asyncio
import uuid
from collections.abc import Iterable
from typing import Any

from fastapi import WebSocket, WebSocketDisconnect

from ..structured_logging.enhanced_logging_config import get_logger

logger = get_logger(__name__)


class ConnectionManager:
    """Tracks open WebSockets by connection id."""

    def __init__(self, send_timeout: float = 5.0) -> None:
        self.active_websockets: dict[str, WebSocket] = {}
        self._send_locks: dict[str, asyncio.Lock] = {}
        self.send_timeout = send_timeout

    async def connect(self, websocket: WebSocket) -> str:
        """
        Accept a WebSocket and assign it a fresh connection id.

        Returns:
            str: The connection id (uuid4 hex)
        """
        await websocket.accept()
        connection_id = uuid.uuid4().hex
        self.active_websockets[connection_id] = websocket
        self._send_locks[connection_id] = asyncio.Lock()
        logger.info("WebSocket connected", connection_id=connection_id, total_connections=len(self.active_websockets))
        return connection_id

    async def disconnect(self, connection_id: str) -> None:
        """Forget a connection. Unknown ids are ignored."""
        websocket = self.active_websockets.pop(connection_id, None)
        self._send_locks.pop(connection_id, None)
        if websocket is not None:
            logger.info(
                "WebSocket disconnected", connection_id=connection_id, total_connections=len(self.active_websockets)
            )

    def is_connected(self, connection_id: str) -> bool:
        return connection_id in self.active_websockets

    def get_connection_ids(self) -> list[str]:
        return list(self.active_websockets)

    @property
    def connection_count(self) -> int:
        return len(self.active_websockets)

    async def send_personal_message(self, connection_id: str, event: dict[str, Any]) -> dict[str, Any]:
        """
        Send one event to one connection.

        A socket that closed under us is reported in the returned status,
        never raised.

        Args:
            connection_id: Target connection
            event: JSON-serializable event

        Returns:
            dict: Delivery status with "success" and, on failure, "error"
        """
        delivery_status: dict[str, Any] = {"connection_id": connection_id, "success": False}

        websocket = self.active_websockets.get(connection_id)
        lock = self._send_locks.get(connection_id)
        if websocket is None or lock is None:
            delivery_status["error"] = "not_connected"
            logger.debug("Send skipped, connection not open", connection_id=connection_id)
            return delivery_status

        try:
            await asyncio.wait_for(self._send_locked(websocket, lock, event), self.send_timeout)
        except TimeoutError:
            logger.warning(
                "WebSocket send timed out, dropping connection",
                connection_id=connection_id,
                event_type=event.get("event_type") or event.get("type"),
                timeout=self.send_timeout,
            )
            delivery_status["error"] = "send_timeout"
            await self._drop_stalled_connection(connection_id, websocket)
            return delivery_status
        except (WebSocketDisconnect, RuntimeError, ConnectionError) as e:
            logger.warning(
                "WebSocket send failed",
                connection_id=connection_id,
                event_type=event.get("event_type") or event.get("type"),
                error=str(e),
                error_type=type(e).__name__,
            )
            delivery_status["error"] = str(e) or type(e).__name__
            return delivery_status

        delivery_status["success"] = True
        return delivery_status

    @staticmethod
    async def _send_locked(websocket: WebSocket, lock: asyncio.Lock, event: dict[str, Any]) -> None:
        async with lock:
            await websocket.send_json(event)

    async def _drop_stalled_connection(self, connection_id: str, websocket: WebSocket) -> None:
        """
        Stop sending to a client that does not read.

        The socket is forgotten before it is closed so concurrent broadcasts
        skip it; the receive loop then ends and tears the peer down.
        """
        if self.active_websockets.get(connection_id) is not websocket:
            return
        await self.disconnect(connection_id)
        try:
            await asyncio.wait_for(websocket.close(code=1008), self.send_timeout)
        except (TimeoutError, WebSocketDisconnect, RuntimeError, ConnectionError) as e:
            logger.debug("Closing stalled WebSocket failed", connection_id=connection_id, error=str(e))

    async def broadcast(
        self,
        event: dict[str, Any],
        exclude: str | Iterable[str] | None = None,
    ) -> dict[str, Any]:
        """
        Send one event to every open connection, optionally excluding some.

        Args:
            event: The event to send
            exclude: Connection id (or ids) to skip

        Returns:
            dict: Broadcast delivery statistics
        """
        if exclude is None:
            excluded: set[str] = set()
        elif isinstance(exclude, str):
            excluded = {exclude}
        else:
            excluded = set(exclude)

        all_connections = self.get_connection_ids()
        targets = [cid for cid in all_connections if cid not in excluded]

        broadcast_stats: dict[str, Any] = {
            "total_connections": len(all_connections),
            "excluded_connections": len(all_connections) - len(targets),
            "successful_deliveries": 0,
            "failed_deliveries": 0,
        }
        if not targets:
            return broadcast_stats

        delivery_results = await asyncio.gather(
            *[self.send_personal_message(cid, event) for cid in targets],
            return_exceptions=True,
        )
        for cid, result in zip(targets, delivery_results, strict=True):
            if isinstance(result, BaseException):
                logger.error("Error sending message in broadcast", connection_id=cid, error=str(result))
                broadcast_stats["failed_deliveries"] += 1
            elif result["success"]:
                broadcast_stats["successful_deliveries"] += 1
            else:
                broadcast_stats["failed_deliveries"] += 1

        return broadcast_stats
