"""
Tests for the in-memory peer registry.
"""

import random
import re

from peerspace.config.models import PresenceConfig
from peerspace.realtime.peer_registry import PeerRegistry


class TestRegistration:
    """register / remove membership behavior."""

    def test_register_uses_spawn_pose(self, peer_registry):
        peer_registry.register("a")

        assert peer_registry.snapshot_poses() == {"a": {"position": [0.0, 0.5, 0.0], "rotation": [0.0, 0.0, 0.0, 1.0]}}

    def test_register_assigns_placeholder_name(self, peer_registry):
        peer_registry.register("a")

        name = peer_registry.get_name("a")
        match = re.fullmatch(r"User(\d+)", name)
        assert match is not None
        assert 0 <= int(match.group(1)) <= 999

    def test_register_twice_keeps_existing_record(self, peer_registry):
        peer_registry.register("a")
        peer_registry.set_name("a", "Alice")
        peer_registry.set_pose("a", [1, 1, 1], [0, 0, 0, 1])

        peer_registry.register("a")

        assert peer_registry.get_name("a") == "Alice"
        assert peer_registry.snapshot_poses()["a"]["position"] == [1, 1, 1]
        assert len(peer_registry) == 1

    def test_remove_is_idempotent(self, peer_registry):
        peer_registry.register("a")

        peer_registry.remove("a")
        peer_registry.remove("a")
        peer_registry.remove("never-registered")

        assert "a" not in peer_registry
        assert len(peer_registry) == 0

    def test_membership_matches_register_remove_sequence(self):
        rng = random.Random(1234)
        registry = PeerRegistry(rng=rng)
        expected: set[str] = set()

        for _ in range(500):
            peer_id = f"peer-{rng.randint(0, 20)}"
            if rng.random() < 0.5:
                registry.register(peer_id)
                expected.add(peer_id)
            else:
                registry.remove(peer_id)
                expected.discard(peer_id)

            assert set(registry.snapshot_poses()) == expected
            assert set(registry.snapshot_names()) == expected


class TestMutation:
    """set_pose / set_name behavior."""

    def test_set_pose_is_stored_exactly(self, peer_registry):
        peer_registry.register("a")

        peer_registry.set_pose("a", [1, 2, 3], [0, 0, 0, 1])

        assert peer_registry.snapshot_poses()["a"] == {"position": [1, 2, 3], "rotation": [0, 0, 0, 1]}

    def test_set_pose_does_not_normalize_rotation(self, peer_registry):
        peer_registry.register("a")

        peer_registry.set_pose("a", [0, 0, 0], [5, 5, 5, 5])

        assert peer_registry.get_pose("a").rotation == [5, 5, 5, 5]

    def test_mutators_ignore_unknown_ids(self, peer_registry):
        peer_registry.set_pose("ghost", [1, 2, 3], [0, 0, 0, 1])
        peer_registry.set_name("ghost", "Casper")

        assert "ghost" not in peer_registry
        assert peer_registry.snapshot_names() == {}

    def test_last_write_wins(self, peer_registry):
        peer_registry.register("a")

        peer_registry.set_pose("a", [1, 1, 1], [0, 0, 0, 1])
        peer_registry.set_pose("a", [2, 2, 2], [0, 0, 0, 1])

        assert peer_registry.snapshot_poses()["a"]["position"] == [2, 2, 2]


class TestSnapshots:
    """Snapshots are independent copies."""

    def test_pose_snapshot_is_deep_copy(self, peer_registry):
        peer_registry.register("a")
        snapshot = peer_registry.snapshot_poses()

        snapshot["a"]["position"][0] = 99
        snapshot["b"] = {}

        assert peer_registry.snapshot_poses()["a"]["position"][0] == 0.0
        assert "b" not in peer_registry

    def test_name_snapshot_is_copy(self, peer_registry):
        peer_registry.register("a")
        names = peer_registry.snapshot_names()

        names["a"] = "Mallory"

        assert peer_registry.get_name("a") != "Mallory"

    def test_unknown_lookups_return_none(self, peer_registry):
        assert peer_registry.get_pose("missing") is None
        assert peer_registry.get_name("missing") is None


def test_from_config_uses_presence_settings():
    config = PresenceConfig(
        spawn_position=[1.0, 2.0, 3.0],
        spawn_rotation=[0.0, 1.0, 0.0, 0.0],
        username_prefix="Guest",
        username_suffix_max=0,
    )
    registry = PeerRegistry.from_config(config)

    registry.register("a")

    assert registry.get_name("a") == "Guest0"
    assert registry.snapshot_poses()["a"] == {"position": [1.0, 2.0, 3.0], "rotation": [0.0, 1.0, 0.0, 0.0]}
