"""
Event envelope utilities for Peerspace real-time messages.

Every server -> client frame uses one schema:
- event_type: str
- timestamp: ISO 8601 UTC with 'Z'
- sequence_number: int (monotonic per-process)
- peer_id: optional, the connection the event concerns
- data: payload
"""

from __future__ import annotations

import threading
from datetime import UTC, datetime
from typing import Any

_global_sequence_counter = 0
_sequence_lock = threading.Lock()


def _get_next_global_sequence() -> int:
    """Thread-safe global sequence number generation."""
    global _global_sequence_counter  # pylint: disable=global-statement

    with _sequence_lock:
        _global_sequence_counter += 1
        return _global_sequence_counter


def utc_now_z() -> str:
    """Return current UTC time in ISO 8601 format with 'Z' suffix."""
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def build_event(
    event_type: str,
    data: Any = None,
    *,
    peer_id: str | None = None,
    sequence_number: int | None = None,
) -> dict[str, Any]:
    """
    Create a normalized event envelope.

    Args:
        event_type: Type of event
        data: Event data payload; None becomes an empty dict
        peer_id: Optional connection id the event is addressed to or about
        sequence_number: Optional explicit sequence number

    Returns:
        The envelope dict, ready for send_json
    """
    seq = sequence_number if sequence_number is not None else _get_next_global_sequence()
    event: dict[str, Any] = {
        "event_type": event_type,
        "timestamp": utc_now_z(),
        "sequence_number": seq,
        "data": {} if data is None else data,
    }
    if peer_id is not None:
        event["peer_id"] = peer_id
    return event
