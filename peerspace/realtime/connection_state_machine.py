"""
Per-connection lifecycle state machine.

A peer connection moves Connecting -> Active -> Closed. A connection that
drops while it is being introduced goes straight from Connecting to Closed.
Closed is terminal; events that arrive afterwards are ignored by the caller.
"""

from datetime import UTC, datetime
from typing import Any

from statemachine import State, StateMachine

from ..structured_logging.enhanced_logging_config import get_logger

logger = get_logger(__name__)


class PeerConnectionStateMachine(StateMachine):
    """
    State machine for one peer connection.

    States:
    - connecting: socket accepted, introduction in progress
    - active: introduced; pose, name, chat, signal and URL events accepted
    - closed: disconnected and removed from the registry

    Transitions:
    - connecting -> active: activate
    - connecting -> closed: disconnect
    - active -> closed: disconnect
    """

    connecting = State("Connecting", initial=True)
    active = State("Active")
    closed = State("Closed", final=True)

    activate = connecting.to(active)
    disconnect = connecting.to(closed) | active.to(closed)

    def __init__(self, connection_id: str):
        # on_enter_state runs during super().__init__(), so attributes come first
        self.connection_id = connection_id
        self.connected_at = datetime.now(UTC)
        self.activated_at: datetime | None = None
        self.closed_at: datetime | None = None

        super().__init__()

    def on_enter_state(self, state: State, event=None, **kwargs) -> None:
        logger.debug(
            "Peer connection state transition",
            connection_id=self.connection_id,
            trigger_event=str(event) if event else "initial",
            to_state=state.id,
        )

    def on_activate(self) -> None:
        self.activated_at = datetime.now(UTC)

    def on_disconnect(self) -> None:
        self.closed_at = datetime.now(UTC)

    @property
    def is_active(self) -> bool:
        return self.current_state.id == "active"

    @property
    def is_closed(self) -> bool:
        return self.current_state.id == "closed"

    def get_stats(self) -> dict[str, Any]:
        """Connection timing information for the health endpoint and logs."""
        return {
            "connection_id": self.connection_id,
            "current_state": self.current_state.id,
            "connected_at": self.connected_at.isoformat(),
            "activated_at": self.activated_at.isoformat() if self.activated_at else None,
            "closed_at": self.closed_at.isoformat() if self.closed_at else None,
        }
