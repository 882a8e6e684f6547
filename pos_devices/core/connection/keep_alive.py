"""
Keep-Alive Heartbeat - Periodic writes that expose silently dead links.

Serial scanners and scales only ever talk when something is scanned or
weighed, so a cable pulled mid-session can go unnoticed until the next
read. The heartbeat writes a single ENQ byte on a fixed interval; a
failed write is reported through ``on_failure`` so the owning adapter can
surface it as an adapter error.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional

from pos_devices.core.asyncio_utils import cancel_task, create_logged_task
from pos_devices.core.logging_utils import get_module_logger

logger = get_module_logger("KeepAlive")

KEEP_ALIVE_BYTE = b"\x05"
DEFAULT_KEEP_ALIVE_INTERVAL = 60.0

WriteFunc = Callable[[bytes], Awaitable[None]]
FailureCallback = Callable[[Exception], None]


class KeepAliveHeartbeat:
    """
    Writes ``payload`` every ``interval`` seconds while ``is_open()`` is true.

    Usage:
        heartbeat = KeepAliveHeartbeat(
            write=transport.write,
            is_open=lambda: transport.is_open,
            interval=60.0,
            on_failure=transport.report_error,
        )
        heartbeat.start()
        ...
        await heartbeat.stop()
    """

    def __init__(
        self,
        write: WriteFunc,
        is_open: Callable[[], bool],
        interval: float = DEFAULT_KEEP_ALIVE_INTERVAL,
        payload: bytes = KEEP_ALIVE_BYTE,
        on_failure: Optional[FailureCallback] = None,
        name: str = "device",
    ):
        if interval <= 0:
            raise ValueError("keep-alive interval must be positive")
        self._write = write
        self._is_open = is_open
        self.interval = interval
        self.payload = payload
        self._on_failure = on_failure
        self._name = name
        self._task: Optional[asyncio.Task] = None
        self.beats_sent = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start (or restart) the heartbeat loop."""
        if self.is_running:
            self._task.cancel()
        self._task = create_logged_task(
            self._run(),
            logger=logger,
            context=f"keep-alive:{self._name}",
        )
        logger.debug("Keep-alive started for %s (interval=%.1fs)", self._name, self.interval)

    async def stop(self) -> None:
        task, self._task = self._task, None
        await cancel_task(task)
        if task is not None:
            logger.debug("Keep-alive stopped for %s", self._name)

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            if not self._is_open():
                continue
            try:
                await self._write(self.payload)
                self.beats_sent += 1
            except Exception as exc:
                logger.error("Keep-alive write error on %s: %s", self._name, exc)
                if self._on_failure:
                    self._on_failure(exc)
                return


__all__ = ["DEFAULT_KEEP_ALIVE_INTERVAL", "KEEP_ALIVE_BYTE", "KeepAliveHeartbeat"]
