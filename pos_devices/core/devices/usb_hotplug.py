"""
USB Hotplug Monitor - attach/detach signals from periodic enumeration.

Each tick lists USB devices through the same backend the detector uses,
diffs the set of vid/pid pairs against the previous tick and notifies
subscribers. Subscribers then run their own (targeted) detection.

Usage:
    monitor = UsbHotplugMonitor(PyUsbBackend())
    monitor.subscribe(on_attach=handle_attach, on_detach=handle_detach)
    await monitor.start()
    ...
    await monitor.stop()
"""

import asyncio
from typing import Awaitable, Callable, List, Optional, Set, Tuple

from ..asyncio_utils import cancel_task, create_logged_task
from ..logging_utils import get_module_logger
from .detector import UsbBackend, filter_usb_devices
from .types import to_hex_id

logger = get_module_logger("UsbHotplugMonitor")

HotplugCallback = Callable[[str, str], Awaitable[None]]
UsbIdPair = Tuple[int, int]


class UsbHotplugMonitor:
    """Polls USB enumeration and reports added/removed vid/pid pairs."""

    DEFAULT_CHECK_INTERVAL = 1.0

    def __init__(self, backend: UsbBackend, check_interval: float = DEFAULT_CHECK_INTERVAL):
        self._backend = backend
        self._check_interval = check_interval
        self._known: Set[UsbIdPair] = set()
        self._attach_subscribers: List[HotplugCallback] = []
        self._detach_subscribers: List[HotplugCallback] = []
        self._running = False
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def known_devices(self) -> Set[UsbIdPair]:
        return set(self._known)

    def subscribe(
        self,
        on_attach: Optional[HotplugCallback] = None,
        on_detach: Optional[HotplugCallback] = None,
    ) -> None:
        if on_attach is not None and on_attach not in self._attach_subscribers:
            self._attach_subscribers.append(on_attach)
        if on_detach is not None and on_detach not in self._detach_subscribers:
            self._detach_subscribers.append(on_detach)

    def unsubscribe(
        self,
        on_attach: Optional[HotplugCallback] = None,
        on_detach: Optional[HotplugCallback] = None,
    ) -> None:
        if on_attach in self._attach_subscribers:
            self._attach_subscribers.remove(on_attach)
        if on_detach in self._detach_subscribers:
            self._detach_subscribers.remove(on_detach)

    def _snapshot(self) -> Set[UsbIdPair]:
        return {(d.vid, d.pid) for d in filter_usb_devices(self._backend.list_devices())}

    async def start(self) -> None:
        """Take the initial snapshot and start the polling loop."""
        if self._running:
            return
        self._running = True
        self._known = await asyncio.to_thread(self._snapshot)
        logger.info("USB hotplug monitor started (%d device(s))", len(self._known))
        self._task = create_logged_task(
            self._monitor_loop(), logger=logger, context="usb-hotplug",
        )

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        task, self._task = self._task, None
        await cancel_task(task)
        logger.info("USB hotplug monitor stopped")

    async def poll_once(self) -> None:
        """Diff the current enumeration against the last one and notify."""
        current = await asyncio.to_thread(self._snapshot)
        added = current - self._known
        removed = self._known - current
        self._known = current

        for vid, pid in sorted(added):
            logger.info("USB attach %04x:%04x", vid, pid)
            await self._notify(self._attach_subscribers, vid, pid)
        for vid, pid in sorted(removed):
            logger.info("USB detach %04x:%04x", vid, pid)
            await self._notify(self._detach_subscribers, vid, pid)

    async def _monitor_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self._check_interval)
            try:
                await self.poll_once()
            except Exception as exc:
                logger.error("Error in USB hotplug monitor: %s", exc)

    async def _notify(self, subscribers: List[HotplugCallback], vid: int, pid: int) -> None:
        vid_hex, pid_hex = to_hex_id(vid), to_hex_id(pid)
        for callback in list(subscribers):
            try:
                await callback(vid_hex, pid_hex)
            except Exception as exc:
                logger.error("Error in USB hotplug callback: %s", exc)


__all__ = ["HotplugCallback", "UsbHotplugMonitor"]
