"""Background work that outlives the HTTP response that started it.

A request handler can return while its coordination task is still waiting;
the supervisor keeps a reference to every such task and the app lifespan
drains them before the process exits.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable

from chatrelay.config.logging import get_logger

logger = get_logger("listener.tasks")


class BackgroundTaskSupervisor:
    """Tracks detached tasks so none are garbage collected or lost at shutdown."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def spawn(self, work: Awaitable[Any], name: str | None = None) -> asyncio.Task[Any]:
        """Start `work` now and track it until it finishes."""
        task = asyncio.ensure_future(work)
        if name:
            task.set_name(name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Background task {task.get_name()} failed: {exc}", exc_info=exc)

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for tracked tasks; cancel whatever is still running after `timeout`."""
        if not self._tasks:
            return

        tasks = list(self._tasks)
        logger.info(f"Waiting for {len(tasks)} background task(s)...")
        done, pending = await asyncio.wait(tasks, timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            logger.warning(f"Cancelled {len(pending)} background task(s) still running at shutdown")
            await asyncio.gather(*pending, return_exceptions=True)


_supervisor: BackgroundTaskSupervisor | None = None


def get_background_supervisor() -> BackgroundTaskSupervisor:
    """Get the process-wide supervisor."""
    global _supervisor
    if _supervisor is None:
        _supervisor = BackgroundTaskSupervisor()
    return _supervisor


def reset_background_supervisor() -> None:
    """Reset the process-wide supervisor (for testing)."""
    global _supervisor
    _supervisor = None
