"""
Connection lifecycle management.

The ConnectionLifecycleManager drives every per-connection event: it
introduces new peers, applies pose and name updates to the registry, relays
chat and signaling traffic, runs URL generation in the background and tears
a peer down on disconnect. Each connection's state is tracked by a
PeerConnectionStateMachine; events from a connection that is not Active are
dropped.
"""

import asyncio
from dataclasses import dataclass
from typing import Any

from fastapi import WebSocket

from ..exceptions import AdapterFailureError, MalformedPayloadError
from ..services.url_generation import PromptToUrlAdapter
from ..structured_logging.enhanced_logging_config import get_logger, log_exception_once
from .connection_manager import ConnectionManager
from .connection_state_machine import PeerConnectionStateMachine
from .envelope import build_event
from .peer_registry import PeerRegistry
from .signaling_relay import RelayResult, SignalingRelay

logger = get_logger(__name__)


@dataclass
class PeerSession:
    """One connection's id and state machine."""

    connection_id: str
    state_machine: PeerConnectionStateMachine

    @property
    def is_active(self) -> bool:
        return self.state_machine.is_active

    @property
    def is_closed(self) -> bool:
        return self.state_machine.is_closed


def parse_pose_payload(payload: Any) -> tuple[Any, Any]:
    """
    Split a move payload into (position, rotation).

    Accepts ``[position, rotation]`` or ``{"position": ..., "rotation": ...}``.
    The values themselves are not validated.

    Raises:
        MalformedPayloadError: If the payload cannot be split
    """
    if isinstance(payload, list | tuple) and len(payload) >= 2:
        return payload[0], payload[1]
    if isinstance(payload, dict) and "position" in payload and "rotation" in payload:
        return payload["position"], payload["rotation"]
    raise MalformedPayloadError(
        "Move payload must be [position, rotation] or {position, rotation}",
        event_type="move",
        details={"payload_type": type(payload).__name__},
    )


class ConnectionLifecycleManager:
    """Per-connection event processing on top of the peer registry."""

    def __init__(
        self,
        registry: PeerRegistry,
        connection_manager: ConnectionManager,
        relay: SignalingRelay,
        url_adapter: PromptToUrlAdapter,
        task_registry,
        max_username_length: int = 64,
        url_generation_timeout: float = 30.0,
    ) -> None:
        self.registry = registry
        self.connection_manager = connection_manager
        self.relay = relay
        self.url_adapter = url_adapter
        self.task_registry = task_registry
        self.max_username_length = max_username_length
        self.url_generation_timeout = url_generation_timeout
        self._sessions: dict[str, PeerSession] = {}

    def get_session(self, connection_id: str) -> PeerSession | None:
        return self._sessions.get(connection_id)

    def is_active(self, connection_id: str) -> bool:
        session = self._sessions.get(connection_id)
        return session is not None and session.is_active

    @property
    def session_count(self) -> int:
        return len(self._sessions)

    def _active_or_drop(self, connection_id: str, event_type: str) -> bool:
        if self.is_active(connection_id):
            return True
        logger.debug("Dropping event from unknown peer", connection_id=connection_id, event_type=event_type)
        return False

    async def connect(self, websocket: WebSocket) -> PeerSession:
        """
        Accept a connection and introduce it.

        The new peer receives the poses of everyone else, everyone else is
        told about the new peer, and the session becomes Active. If the
        introduction cannot be delivered the session is closed instead.
        """
        connection_id = await self.connection_manager.connect(websocket)
        session = PeerSession(connection_id, PeerConnectionStateMachine(connection_id))
        self._sessions[connection_id] = session

        others = self.registry.snapshot_poses()
        self.registry.register(connection_id)

        introduction = build_event("introduction", others, peer_id=connection_id)
        delivery_status = await self.connection_manager.send_personal_message(connection_id, introduction)
        if not delivery_status["success"]:
            logger.warning("Introduction could not be delivered", connection_id=connection_id)
            await self.disconnect(connection_id)
            return session

        await self.connection_manager.broadcast(
            build_event("newPeerConnected", {"id": connection_id}, peer_id=connection_id), exclude=connection_id
        )
        session.state_machine.activate()
        logger.info(
            "Peer joined",
            connection_id=connection_id,
            name=self.registry.get_name(connection_id),
            peer_count=len(self.registry),
        )
        return session

    async def set_name(self, connection_id: str, name: Any) -> bool:
        """
        Rename a peer and push the full name table to everyone at once.

        Returns:
            True if the name was accepted
        """
        if not self._active_or_drop(connection_id, "setUsername"):
            return False
        if not isinstance(name, str):
            logger.debug("Ignoring non-string username", connection_id=connection_id)
            return False
        name = name.strip()
        if not name or len(name) > self.max_username_length:
            logger.debug("Ignoring invalid username", connection_id=connection_id, length=len(name))
            return False

        self.registry.set_name(connection_id, name)
        logger.info("Peer renamed", connection_id=connection_id, name=name)
        await self.connection_manager.broadcast(build_event("usernames", self.registry.snapshot_names()))
        return True

    async def move(self, connection_id: str, payload: Any) -> bool:
        """Store a new pose; it goes out with the next snapshot."""
        if not self._active_or_drop(connection_id, "move"):
            return False
        try:
            position, rotation = parse_pose_payload(payload)
        except MalformedPayloadError:
            return False
        self.registry.set_pose(connection_id, position, rotation)
        return True

    async def chat(self, connection_id: str, payload: Any) -> dict[str, Any] | None:
        """Forward a chat payload verbatim to every other peer."""
        if not self._active_or_drop(connection_id, "msg"):
            return None
        event = build_event("msg", {"from": connection_id, "data": payload}, peer_id=connection_id)
        return await self.connection_manager.broadcast(event, exclude=connection_id)

    async def signal(self, connection_id: str, payload: Any) -> RelayResult | None:
        """
        Relay a signaling payload to the peer named in ``payload["to"]``.

        The relayed ``from`` is always the sender's own id.
        """
        if not self._active_or_drop(connection_id, "signal"):
            return None
        if not isinstance(payload, dict) or not isinstance(payload.get("to"), str):
            logger.debug("Dropping signal without target", connection_id=connection_id)
            return None
        return await self.relay.relay(payload["to"], connection_id, payload.get("data"))

    def request_url(self, connection_id: str, prompt: Any) -> asyncio.Task[Any] | None:
        """
        Start URL generation for a peer in a tracked background task.

        The receive loop does not wait for the adapter; the result is sent to
        the requester when it arrives.
        """
        if not self._active_or_drop(connection_id, "generateURL"):
            return None
        return self.task_registry.register_task(
            self._generate_url(connection_id, prompt), f"adapter/generate_url/{connection_id}", "adapter"
        )

    async def _generate_url(self, connection_id: str, prompt: Any) -> str | None:
        url: str | None = None
        if isinstance(prompt, str) and prompt.strip():
            try:
                url = await asyncio.wait_for(self.url_adapter.generate_url(prompt), self.url_generation_timeout)
            except TimeoutError:
                logger.warning(
                    "URL generation timed out", connection_id=connection_id, timeout=self.url_generation_timeout
                )
            except AdapterFailureError as e:
                log_exception_once(logger, "warning", "URL generation failed", exc=e, connection_id=connection_id)
            except Exception as e:  # pylint: disable=broad-exception-caught
                logger.error(
                    "Unexpected URL adapter error",
                    connection_id=connection_id,
                    error=str(e),
                    error_type=type(e).__name__,
                    exc_info=True,
                )
        else:
            logger.debug("Empty URL generation prompt", connection_id=connection_id)

        if not self.is_active(connection_id):
            logger.debug("Dropping URL for departed peer", connection_id=connection_id)
            return url

        await self.connection_manager.send_personal_message(
            connection_id, build_event("generatedURL", {"url": url}, peer_id=connection_id)
        )
        return url

    async def disconnect(self, connection_id: str) -> None:
        """
        Tear down a peer. Safe to call more than once.

        Remaining peers learn about the departure and get the updated name
        table immediately; the poses follow with the next snapshot.
        """
        session = self._sessions.pop(connection_id, None)
        if session is None or session.is_closed:
            return

        was_active = session.is_active
        session.state_machine.disconnect()
        self.registry.remove(connection_id)
        await self.connection_manager.disconnect(connection_id)

        if was_active:
            await self.connection_manager.broadcast(
                build_event("peerDisconnected", {"id": connection_id}, peer_id=connection_id)
            )
            await self.connection_manager.broadcast(build_event("usernames", self.registry.snapshot_names()))

        logger.info("Peer left", connection_id=connection_id, peer_count=len(self.registry))
