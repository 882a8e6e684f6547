"""Background tasks started from event handlers.

Connect handlers, hot-plug polling, serial reader loops and coalesced
refreshes all run as tasks nobody awaits directly. ``create_logged_task``
makes sure their failures reach the log; ``KeyedTasks`` keeps at most one
such task per device id.
"""

from __future__ import annotations

import asyncio
import contextlib
from typing import Any, Awaitable, Dict, List, Optional, Set

from .logging_utils import LoggerLike, ensure_structured_logger


def create_logged_task(
    coro: Awaitable[Any],
    *,
    logger: LoggerLike = None,
    context: Optional[str] = None,
    pending: Optional[Set[asyncio.Task]] = None,
) -> asyncio.Task:
    """Schedule ``coro``; an exception it raises is logged, never lost.

    ``pending``, when given, holds the task until it finishes.
    """
    task = asyncio.get_running_loop().create_task(coro, name=context)
    task_logger = ensure_structured_logger(logger, fallback_name="Tasks")
    label = context or task.get_name()

    def _log_failure(done: asyncio.Task) -> None:
        if done.cancelled():
            return
        exc = done.exception()
        if exc is not None:
            task_logger.error("Unhandled exception in %s: %s", label, exc, exc_info=exc)

    task.add_done_callback(_log_failure)
    if pending is not None:
        pending.add(task)
        task.add_done_callback(pending.discard)
    return task


async def cancel_task(task: Optional[asyncio.Task]) -> None:
    """Cancel ``task`` and wait for it to finish unwinding."""
    if task is None or task.done():
        return
    task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await task


class KeyedTasks:
    """At most one logged background task per key (a device id)."""

    def __init__(self, logger: LoggerLike = None) -> None:
        self._logger = logger
        self._tasks: Dict[str, asyncio.Task] = {}

    def spawn(self, key: str, coro: Awaitable[Any], context: Optional[str] = None) -> asyncio.Task:
        """Start ``coro`` for ``key``; an earlier task for the key is left to finish."""
        task = create_logged_task(coro, logger=self._logger, context=context or key)
        self._tasks[key] = task

        def _forget(done: asyncio.Task) -> None:
            if self._tasks.get(key) is done:
                del self._tasks[key]

        task.add_done_callback(_forget)
        return task

    def get(self, key: str) -> Optional[asyncio.Task]:
        return self._tasks.get(key)

    def __contains__(self, key: str) -> bool:
        return key in self._tasks

    def __len__(self) -> int:
        return len(self._tasks)

    def tasks(self) -> List[asyncio.Task]:
        return list(self._tasks.values())

    async def cancel(self, key: str) -> None:
        await cancel_task(self._tasks.pop(key, None))

    async def cancel_all(self) -> None:
        for key in list(self._tasks):
            await self.cancel(key)


__all__ = ["KeyedTasks", "cancel_task", "create_logged_task"]
