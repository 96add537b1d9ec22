"""
Periodic presence broadcast.

Every interval the scheduler snapshots the peer registry and pushes a
``peers`` event and a ``usernames`` event to every open connection. It does
not react to connection events; joins, moves and leaves simply show up in
the next snapshot.
"""

import asyncio
from typing import Any

from ..structured_logging.enhanced_logging_config import get_logger
from .connection_manager import ConnectionManager
from .envelope import build_event
from .peer_registry import PeerRegistry

logger = get_logger(__name__)


class BroadcastScheduler:
    """Timer-driven fan-out of the full registry state."""

    def __init__(self, registry: PeerRegistry, connection_manager: ConnectionManager, interval: float = 0.1) -> None:
        self._registry = registry
        self._connection_manager = connection_manager
        self.interval = interval
        self.tick_count = 0
        self._task: asyncio.Task[Any] | None = None

    async def tick(self) -> dict[str, Any]:
        """
        Push one snapshot to every connection.

        Returns:
            dict: Delivery statistics of the two broadcasts
        """
        peers_event = build_event("peers", self._registry.snapshot_poses())
        usernames_event = build_event("usernames", self._registry.snapshot_names())

        peers_stats = await self._connection_manager.broadcast(peers_event)
        usernames_stats = await self._connection_manager.broadcast(usernames_event)
        self.tick_count += 1
        return {"peers": peers_stats, "usernames": usernames_stats}

    async def run(self) -> None:
        """
        Broadcast loop; runs until cancelled.

        Ticks are scheduled against fixed deadlines, so the time a tick takes
        does not stretch the period. A tick that overruns its slot starts the
        next one immediately instead of trying to catch up.
        """
        logger.info("Presence broadcast loop started", interval=self.interval)
        loop = asyncio.get_running_loop()
        next_deadline = loop.time()

        while True:
            try:
                await self.tick()
            except asyncio.CancelledError:
                logger.info("Presence broadcast loop cancelled", tick_count=self.tick_count)
                break
            except Exception as e:  # pylint: disable=broad-exception-caught
                logger.error(
                    "Error in presence broadcast tick", tick_count=self.tick_count, error=str(e), exc_info=True
                )

            now = loop.time()
            next_deadline = max(next_deadline + self.interval, now)
            try:
                await asyncio.sleep(next_deadline - now)
            except asyncio.CancelledError:
                logger.info("Presence broadcast loop cancelled", tick_count=self.tick_count)
                break

    def start(self, task_registry) -> asyncio.Task[Any]:
        """Start the loop as a tracked lifecycle task."""
        if self._task is not None and not self._task.done():
            return self._task
        self._task = task_registry.register_task(self.run(), "lifecycle/presence_broadcast", "lifecycle")
        return self._task

    async def stop(self) -> None:
        """Cancel the loop and wait for it to finish."""
        if self._task is None:
            return
        task, self._task = self._task, None
        if not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()
