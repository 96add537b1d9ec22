"""
Real-time presence layer: peer registry, connection lifecycle, signaling
relay and the periodic presence broadcast.
"""

from .broadcast_scheduler import BroadcastScheduler
from .connection_lifecycle import ConnectionLifecycleManager, PeerSession
from .connection_manager import ConnectionManager
from .peer_registry import PeerRegistry, Pose
from .signaling_relay import RelayResult, SignalingRelay

__all__ = [
    "BroadcastScheduler",
    "ConnectionLifecycleManager",
    "ConnectionManager",
    "PeerRegistry",
    "PeerSession",
    "Pose",
    "RelayResult",
    "SignalingRelay",
]
