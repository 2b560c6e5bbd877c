"""
Supervised fire-and-forget tasks.

Keeps a strong reference to every spawned task until it finishes and logs
any failure instead of letting it vanish with the task object.
"""

import asyncio
import logging
from typing import Coroutine, Optional, Set

logger = logging.getLogger("tenjin.tasks")


class TaskSupervisor:

    def __init__(self, name: str, max_pending: Optional[int] = None):
        self.name = name
        self.max_pending = max_pending
        self._tasks: Set[asyncio.Task] = set()
        self.dropped = 0

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Coroutine, label: str = "task") -> Optional[asyncio.Task]:
        """
        Schedule ``coro`` on the running loop.
        Returns None (and closes the coroutine) when the bound is reached.
        """
        if self.max_pending is not None and len(self._tasks) >= self.max_pending:
            self.dropped += 1
            coro.close()
            logger.warning(
                "[%s] %d tasks pending, dropping %s", self.name, len(self._tasks), label,
            )
            return None

        task = asyncio.get_running_loop().create_task(coro, name=f"{self.name}:{label}")
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("[%s] %s failed: %s", self.name, task.get_name(), exc)

    def cancel_all(self) -> None:
        for task in list(self._tasks):
            task.cancel()

    async def drain(self) -> None:
        """Wait for every currently pending task (used by tests and shutdown)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
