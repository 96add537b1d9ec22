"""Helpers shared by the realtime tests."""

from typing import Any
from unittest.mock import Mock


def sent_events(websocket: Mock) -> list[dict[str, Any]]:
    """Every frame sent to a mock WebSocket, in order."""
    return [call.args[0] for call in websocket.send_json.call_args_list]


def events_of_type(websocket: Mock, event_type: str) -> list[dict[str, Any]]:
    return [event for event in sent_events(websocket) if event.get("event_type") == event_type]


def error_frames(websocket: Mock) -> list[dict[str, Any]]:
    return [event for event in sent_events(websocket) if event.get("type") == "error"]
