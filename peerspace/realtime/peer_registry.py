"""
In-memory registry of connected peers.

The registry maps a connection id to one record holding the avatar pose and
the display name, so pose membership and name membership can never diverge.
It is the single source of truth for "who is connected and where"; every
other component reads it through snapshots.

All mutation happens on the asyncio event loop thread, so there is no lock.
"""

import copy
import random
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from typing import Any

from ..structured_logging.enhanced_logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_SPAWN_POSITION = (0.0, 0.5, 0.0)
DEFAULT_SPAWN_ROTATION = (0.0, 0.0, 0.0, 1.0)


@dataclass
class Pose:
    """Avatar position (x, y, z) and orientation quaternion (x, y, z, w)."""

    position: Any
    rotation: Any

    def to_dict(self) -> dict[str, Any]:
        return {"position": self.position, "rotation": self.rotation}


@dataclass
class PeerRecord:
    """Pose and display name of one connection."""

    pose: Pose
    name: str


class PeerRegistry:
    """
    Owner of all peer records.

    Mutators are no-ops for unknown ids; callers never need to check
    membership first.
    """

    def __init__(
        self,
        spawn_position: Sequence[float] = DEFAULT_SPAWN_POSITION,
        spawn_rotation: Sequence[float] = DEFAULT_SPAWN_ROTATION,
        username_prefix: str = "User",
        username_suffix_max: int = 999,
        rng: random.Random | None = None,
    ) -> None:
        self._spawn_position = list(spawn_position)
        self._spawn_rotation = list(spawn_rotation)
        self._username_prefix = username_prefix
        self._username_suffix_max = username_suffix_max
        self._rng = rng or random.Random()
        self._peers: dict[str, PeerRecord] = {}

    @classmethod
    def from_config(cls, presence_config) -> "PeerRegistry":
        """Build a registry from a PresenceConfig section."""
        return cls(
            spawn_position=presence_config.spawn_position,
            spawn_rotation=presence_config.spawn_rotation,
            username_prefix=presence_config.username_prefix,
            username_suffix_max=presence_config.username_suffix_max,
        )

    def _placeholder_name(self) -> str:
        return f"{self._username_prefix}{self._rng.randint(0, self._username_suffix_max)}"

    def register(self, peer_id: str) -> None:
        """Insert a record with the spawn pose and a placeholder name."""
        if peer_id in self._peers:
            logger.debug("Peer already registered", peer_id=peer_id)
            return
        self._peers[peer_id] = PeerRecord(
            pose=Pose(list(self._spawn_position), list(self._spawn_rotation)),
            name=self._placeholder_name(),
        )
        logger.debug("Peer registered", peer_id=peer_id, name=self._peers[peer_id].name)

    def set_pose(self, peer_id: str, position: Any, rotation: Any) -> None:
        """Overwrite the pose of a peer; stored exactly as received."""
        record = self._peers.get(peer_id)
        if record is None:
            return
        record.pose = Pose(position, rotation)

    def set_name(self, peer_id: str, name: str) -> None:
        """Overwrite the display name of a peer."""
        record = self._peers.get(peer_id)
        if record is None:
            return
        record.name = name

    def remove(self, peer_id: str) -> None:
        """Delete a peer record. Removing an unknown id does nothing."""
        if self._peers.pop(peer_id, None) is not None:
            logger.debug("Peer removed", peer_id=peer_id)

    def snapshot_poses(self) -> dict[str, dict[str, Any]]:
        """Point-in-time deep copy of every pose, keyed by peer id."""
        return {peer_id: copy.deepcopy(record.pose.to_dict()) for peer_id, record in self._peers.items()}

    def snapshot_names(self) -> dict[str, str]:
        """Point-in-time copy of every display name, keyed by peer id."""
        return {peer_id: record.name for peer_id, record in self._peers.items()}

    def get_pose(self, peer_id: str) -> Pose | None:
        record = self._peers.get(peer_id)
        return copy.deepcopy(record.pose) if record else None

    def get_name(self, peer_id: str) -> str | None:
        record = self._peers.get(peer_id)
        return record.name if record else None

    def __contains__(self, peer_id: object) -> bool:
        return peer_id in self._peers

    def __len__(self) -> int:
        return len(self._peers)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._peers))
