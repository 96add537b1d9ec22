"""
Tests for the per-connection receive loop.
"""

import json
from unittest.mock import AsyncMock

import pytest
from fastapi import WebSocketDisconnect

from peerspace.realtime.message_handler_factory import MessageHandlerFactory
from peerspace.realtime.websocket_handler import handle_websocket_connection, parse_frame
from peerspace.tests.utils import error_frames, events_of_type


def _frames(*messages):
    """receive_text side effects: the given frames, then a disconnect."""
    return [m if isinstance(m, str) else json.dumps(m) for m in messages] + [WebSocketDisconnect(code=1000)]


@pytest.fixture
def factory(lifecycle) -> MessageHandlerFactory:
    return MessageHandlerFactory(lifecycle)


class TestParseFrame:
    """Frame parsing."""

    def test_valid_frame(self):
        assert parse_frame('{"type": "msg", "data": "hi"}') == {"type": "msg", "data": "hi"}

    def test_invalid_json(self):
        with pytest.raises(json.JSONDecodeError):
            parse_frame("{not json")

    @pytest.mark.parametrize("raw", ["[1, 2]", '"text"', "{}", '{"type": 5}'])
    def test_structurally_invalid(self, raw):
        with pytest.raises(ValueError):
            parse_frame(raw)


class TestConnectionLoop:
    """handle_websocket_connection end to end with a fake socket."""

    @pytest.mark.asyncio
    async def test_events_are_processed_then_peer_is_removed(
        self, lifecycle, factory, peer_registry, make_websocket
    ):
        websocket = make_websocket()
        websocket.receive_text = AsyncMock(
            side_effect=_frames(
                {"type": "setUsername", "data": "Alice"},
                {"type": "move", "data": [[1, 2, 3], [0, 0, 0, 1]]},
            )
        )

        await handle_websocket_connection(websocket, lifecycle, factory)

        assert events_of_type(websocket, "introduction")
        assert list(events_of_type(websocket, "usernames")[-1]["data"].values()) == ["Alice"]
        assert len(peer_registry) == 0
        assert lifecycle.session_count == 0

    @pytest.mark.asyncio
    async def test_invalid_json_keeps_connection_open(self, lifecycle, factory, make_websocket):
        websocket = make_websocket()
        websocket.receive_text = AsyncMock(side_effect=_frames("{oops", {"type": "setUsername", "data": "Bob"}))

        await handle_websocket_connection(websocket, lifecycle, factory)

        errors = error_frames(websocket)
        assert [error["error_type"] for error in errors] == ["invalid_format"]
        assert errors[0]["message"] == "Invalid JSON format"
        assert "Bob" in events_of_type(websocket, "usernames")[-1]["data"].values()

    @pytest.mark.asyncio
    async def test_frame_without_type_is_rejected(self, lifecycle, factory, make_websocket):
        websocket = make_websocket()
        websocket.receive_text = AsyncMock(side_effect=_frames({"data": "x"}, [1, 2]))

        await handle_websocket_connection(websocket, lifecycle, factory)

        assert [error["error_type"] for error in error_frames(websocket)] == ["invalid_format", "invalid_format"]

    @pytest.mark.asyncio
    async def test_oversize_frame_is_rejected(self, lifecycle, factory, make_websocket):
        websocket = make_websocket()
        big = json.dumps({"type": "msg", "data": "x" * 200})
        websocket.receive_text = AsyncMock(side_effect=_frames(big))

        await handle_websocket_connection(websocket, lifecycle, factory, max_message_size=100)

        errors = error_frames(websocket)
        assert [error["error_type"] for error in errors] == ["message_too_large"]
        assert errors[0]["details"]["max_message_size"] == 100

    @pytest.mark.asyncio
    async def test_unknown_type_gets_invalid_command(self, lifecycle, factory, make_websocket):
        websocket = make_websocket()
        websocket.receive_text = AsyncMock(side_effect=_frames({"type": "teleport"}))

        await handle_websocket_connection(websocket, lifecycle, factory)

        assert [error["error_type"] for error in error_frames(websocket)] == ["invalid_command"]

    @pytest.mark.asyncio
    async def test_handler_crash_is_reported_and_loop_continues(self, lifecycle, factory, make_websocket):
        websocket = make_websocket()
        websocket.receive_text = AsyncMock(
            side_effect=_frames({"type": "msg", "data": "first"}, {"type": "setUsername", "data": "Carol"})
        )
        lifecycle.chat = AsyncMock(side_effect=KeyError("boom"))

        await handle_websocket_connection(websocket, lifecycle, factory)

        assert [error["error_type"] for error in error_frames(websocket)] == ["internal_error"]
        assert "Carol" in events_of_type(websocket, "usernames")[-1]["data"].values()

    @pytest.mark.asyncio
    async def test_lost_socket_ends_loop(self, lifecycle, factory, make_websocket):
        websocket = make_websocket()
        websocket.receive_text = AsyncMock(side_effect=RuntimeError("WebSocket is not connected"))

        await handle_websocket_connection(websocket, lifecycle, factory)

        websocket.receive_text.assert_awaited_once()
        assert lifecycle.session_count == 0

    @pytest.mark.asyncio
    async def test_departure_is_announced_to_others(self, lifecycle, factory, make_websocket):
        other = make_websocket()
        await lifecycle.connect(other)
        websocket = make_websocket()
        websocket.receive_text = AsyncMock(side_effect=_frames())

        await handle_websocket_connection(websocket, lifecycle, factory)

        departed = events_of_type(other, "peerDisconnected")
        assert len(departed) == 1
        assert departed[0]["data"]["id"] == events_of_type(websocket, "introduction")[0]["peer_id"]

    @pytest.mark.asyncio
    async def test_failed_introduction_skips_loop(self, lifecycle, factory, make_websocket):
        websocket = make_websocket()
        websocket.send_json.side_effect = RuntimeError("WebSocket is not connected")
        websocket.receive_text = AsyncMock()

        await handle_websocket_connection(websocket, lifecycle, factory)

        websocket.receive_text.assert_not_awaited()
        assert lifecycle.session_count == 0
