"""
Registry of the asyncio tasks the server starts.

Long-running loops and one-off adapter calls are created through the
registry so shutdown can cancel everything that is still running, with a
timeout.
"""

import asyncio
from collections.abc import Coroutine
from typing import Any

from ..structured_logging.enhanced_logging_config import get_logger

logger = get_logger("peerspace.app.task_registry")


class TaskMetadata:
    """Metadata for tracked asyncio.Tasks."""

    def __init__(self, task: asyncio.Task[Any], task_name: str, task_type: str = "unknown"):
        """
        Initialize task metadata.

        Args:
            task: The asyncio.Task instance to track
            task_name: Human-readable name for this task
            task_type: Category of task (e.g. 'lifecycle', 'adapter')
        """
        self.task = task
        self.task_name = task_name
        self.task_type = task_type
        self.created_at = asyncio.get_running_loop().time()
        self.is_lifecycle = task_type == "lifecycle"

    def __repr__(self):
        status = "done" if self.task.done() else "pending"
        return f"TaskMetadata({self.task_name}, {self.task_type}, {status})"


class TaskRegistry:
    """Tracks asyncio tasks and cancels them on shutdown."""

    def __init__(self):
        self._active_tasks: dict[asyncio.Task[Any], TaskMetadata] = {}
        self._task_names: dict[str, asyncio.Task[Any]] = {}
        self._shutdown_in_progress = False

    def register_task(
        self, coro: Coroutine[Any, Any, Any], task_name: str, task_type: str = "unknown"
    ) -> asyncio.Task[Any]:
        """
        Create a tracked asyncio.Task.

        Args:
            coro: The coroutine to wrap as a task
            task_name: Identifier for this task; made unique if already taken
            task_type: Category for task management (lifecycle, adapter, ...)

        Returns:
            The created asyncio.Task

        Raises:
            RuntimeError: If shutdown has already started
        """
        if self._shutdown_in_progress:
            coro.close()
            logger.warning("Attempting to register task during shutdown - denied", task_name=task_name)
            raise RuntimeError("Task registration denied during shutdown")

        if task_name in self._task_names:
            task_name = f"{task_name}_{asyncio.get_running_loop().time()}"

        task: asyncio.Task[Any] = asyncio.create_task(coro, name=task_name)
        self._active_tasks[task] = TaskMetadata(task, task_name, task_type)
        self._task_names[task_name] = task

        def task_completion_callback(completed_task: asyncio.Task[Any]) -> None:
            self._active_tasks.pop(completed_task, None)
            if self._task_names.get(task_name) is completed_task:
                del self._task_names[task_name]
            if not completed_task.cancelled() and completed_task.exception() is not None:
                logger.error(
                    "Tracked task failed",
                    task_name=task_name,
                    error=str(completed_task.exception()),
                    error_type=type(completed_task.exception()).__name__,
                )
            else:
                logger.debug("Task completed and cleaned up", task_name=task_name)

        task.add_done_callback(task_completion_callback)

        logger.debug("Registered task", task_name=task_name, task_type=task_type)
        return task

    async def cancel_task(self, task: str | asyncio.Task[Any], wait_timeout: float = 2.0) -> bool:
        """
        Cancel one task and wait for it to finish.

        Args:
            task: Task reference or name
            wait_timeout: Maximum time to wait for cancellation completion

        Returns:
            True if the task is done afterwards, False if not found or still running
        """
        if isinstance(task, str):
            target_task = self._task_names.get(task)
            if target_task is None:
                logger.debug("Cancellation target not found", task=task)
                return False
        else:
            target_task = task
            if target_task not in self._active_tasks and not target_task.done():
                logger.debug("Cancellation task not found in active tasks")
                return False

        if target_task.done():
            return True

        target_task.cancel()
        try:
            await asyncio.wait_for(target_task, timeout=wait_timeout)
        except TimeoutError:
            logger.warning("Cancellation timeout reached", task_name=target_task.get_name())
            return False
        except asyncio.CancelledError:
            logger.debug("Cancelled task successfully", task_name=target_task.get_name())
        return True

    async def shutdown_all(self, timeout: float = 5.0) -> bool:
        """
        Cancel every tracked task, lifecycle tasks first.

        Args:
            timeout: Time to wait for cancelled tasks to finish

        Returns:
            True if no tracked task is left running
        """
        if self._shutdown_in_progress:
            logger.warning("Shutdown already in progress")
            return False
        self._shutdown_in_progress = True

        tasks = list(self._active_tasks.values())
        ordered = [m for m in tasks if m.is_lifecycle] + [m for m in tasks if not m.is_lifecycle]
        for metadata in ordered:
            if not metadata.task.done():
                logger.debug("Cancelling task", task_name=metadata.task_name, task_type=metadata.task_type)
                metadata.task.cancel()

        pending = [m.task for m in ordered]
        if pending:
            try:
                await asyncio.wait_for(asyncio.gather(*pending, return_exceptions=True), timeout)
            except TimeoutError:
                logger.error("TaskRegistry shutdown timeout", timeout=timeout)

        remaining = [m.task_name for m in self._active_tasks.values() if not m.task.done()]
        if remaining:
            logger.warning("Tasks still active after shutdown", active_tasks=remaining)
        else:
            logger.info("All tracked tasks terminated", cancelled_count=len(pending))

        self._shutdown_in_progress = False
        return not remaining

    def list_active_tasks(self) -> list[TaskMetadata]:
        """Return metadata of tasks that have not finished."""
        return [m for m in self._active_tasks.values() if not m.task.done()]

    def get_registry_info(self) -> dict[str, Any]:
        """Return registry state information."""
        active = self.list_active_tasks()
        return {
            "active_tasks": len(active),
            "lifecycle_tasks": len([m for m in active if m.is_lifecycle]),
            "registry_shutdown_in_progress": self._shutdown_in_progress,
        }
