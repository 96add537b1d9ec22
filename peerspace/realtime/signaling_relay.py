"""
Point-to-point relay for WebRTC signaling payloads.

The relay never looks inside a payload; it only checks that the target is a
registered peer and forwards the payload to it exactly once.
"""

from enum import Enum
from typing import Any

from ..structured_logging.enhanced_logging_config import get_logger
from .connection_manager import ConnectionManager
from .envelope import build_event
from .peer_registry import PeerRegistry

logger = get_logger(__name__)


class RelayResult(Enum):
    """Outcome of a relay attempt."""

    DELIVERED = "delivered"
    PEER_NOT_FOUND = "peer_not_found"
    DELIVERY_FAILED = "delivery_failed"


class SignalingRelay:
    """Forwards opaque signaling payloads between two connections."""

    def __init__(self, registry: PeerRegistry, connection_manager: ConnectionManager) -> None:
        self._registry = registry
        self._connection_manager = connection_manager

    async def relay(self, to_id: str, from_id: str, payload: Any) -> RelayResult:
        """
        Deliver payload to to_id as a ``signal`` event.

        Fire-and-forget: there is no acknowledgment and no retry.

        Args:
            to_id: Target connection id
            from_id: Sending connection id
            payload: Opaque signaling data, forwarded unchanged

        Returns:
            RelayResult: DELIVERED, PEER_NOT_FOUND or DELIVERY_FAILED
        """
        if to_id not in self._registry:
            logger.warning("Peer not found for signal", to_id=to_id, from_id=from_id)
            return RelayResult.PEER_NOT_FOUND

        event = build_event("signal", {"to": to_id, "from": from_id, "data": payload}, peer_id=to_id)
        delivery_status = await self._connection_manager.send_personal_message(to_id, event)
        if not delivery_status["success"]:
            logger.warning(
                "Signal delivery failed", to_id=to_id, from_id=from_id, error=delivery_status.get("error")
            )
            return RelayResult.DELIVERY_FAILED

        logger.debug("Signal relayed", to_id=to_id, from_id=from_id)
        return RelayResult.DELIVERED
