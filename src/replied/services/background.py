"""Detached background tasks.

Work spawned here has no join point and no error channel back to the code
that spawned it: delivery is at-most-once and best effort.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

logger = logging.getLogger(__name__)


class BackgroundTaskRunner:
    """Spawn fire-and-forget coroutines on the running event loop."""

    def __init__(self) -> None:
        # The event loop only keeps weak references to tasks.
        self._tasks: set[asyncio.Task[Any]] = set()
        self._closed = False

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Coroutine[Any, Any, Any], *, name: str | None = None) -> None:
        """Schedule ``coro`` and return immediately."""
        if self._closed:
            logger.warning("Background runner is shut down; dropping task %s", name or coro)
            coro.close()
            return
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background task %s failed: %r", task.get_name(), exc)

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for in-flight tasks; used by tests and graceful shutdown."""
        if not self._tasks:
            return
        await asyncio.wait(set(self._tasks), timeout=timeout)

    async def shutdown(self, timeout: float = 5.0) -> None:
        """Stop accepting work, give in-flight tasks ``timeout`` seconds, cancel the rest."""
        self._closed = True
        await self.drain(timeout)
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
