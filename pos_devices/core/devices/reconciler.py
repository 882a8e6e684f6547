"""
Device Reconciler - authoritative device map and connect/disconnect source.

Every scan rebuilds ``TerminalDevice`` objects from live detection merged
with saved config, diffs them against the map and publishes the
differences on the event bus. Full scans are single-flight: concurrent
callers await the scan already running, and a request that arrives
mid-scan schedules exactly one follow-up scan after a short delay.
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Mapping, Optional, Union

from ..asyncio_utils import cancel_task, create_logged_task
from ..logging_utils import get_module_logger
from .config_store import DeviceConfigStore
from .detector import DeviceDetector, merge_saved_config
from .events import DeviceEventBus, DeviceHandler, Subscription
from .types import DeviceConfig, DeviceType, TerminalDevice, to_hex_id
from .usb_hotplug import UsbHotplugMonitor

logger = get_module_logger("DeviceReconciler")

UsbId = Union[int, str]

DEFAULT_COALESCE_DELAY = 0.05


def _meta_changed(old: TerminalDevice, new: TerminalDevice, *, include_labels: bool = False) -> bool:
    if old.reconciliation_key() != new.reconciliation_key():
        return True
    if include_labels:
        return old.meta.brand != new.meta.brand or old.meta.model != new.meta.model
    return False


class DeviceReconciler:
    """Maps hardware detections onto persistent device identities."""

    def __init__(
        self,
        detector: Optional[DeviceDetector] = None,
        config_store: Optional[DeviceConfigStore] = None,
        event_bus: Optional[DeviceEventBus] = None,
        hotplug_monitor: Optional[UsbHotplugMonitor] = None,
        *,
        enable_hotplug: bool = True,
        hotplug_interval: float = UsbHotplugMonitor.DEFAULT_CHECK_INTERVAL,
        coalesce_delay: float = DEFAULT_COALESCE_DELAY,
    ) -> None:
        self._detector = detector or DeviceDetector()
        self._config = config_store or DeviceConfigStore()
        self._events = event_bus or DeviceEventBus()
        if hotplug_monitor is None and enable_hotplug:
            hotplug_monitor = UsbHotplugMonitor(self._detector.usb_backend, hotplug_interval)
        self._hotplug = hotplug_monitor
        self._coalesce_delay = coalesce_delay

        self._devices: Dict[str, TerminalDevice] = {}
        self._running = False
        self._hotplug_registered = False
        self._refresh_task: Optional[asyncio.Task] = None
        self._refresh_requested = False
        self._followup_task: Optional[asyncio.Task] = None

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def config_store(self) -> DeviceConfigStore:
        return self._config

    @property
    def event_bus(self) -> DeviceEventBus:
        return self._events

    @property
    def refresh_in_progress(self) -> bool:
        return self._refresh_task is not None and not self._refresh_task.done()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """Initial full scan, then hot-plug registration (once)."""
        if self._running:
            return
        await self.refresh_devices()
        if self._hotplug is not None and not self._hotplug_registered:
            self._hotplug.subscribe(on_attach=self._on_usb_attach, on_detach=self._on_usb_detach)
            await self._hotplug.start()
            self._hotplug_registered = True
        self._running = True
        logger.info("Device reconciler started with %d device(s)", len(self._devices))

    async def stop(self) -> None:
        if not self._running:
            return
        if self._hotplug is not None and self._hotplug_registered:
            self._hotplug.unsubscribe(on_attach=self._on_usb_attach, on_detach=self._on_usb_detach)
            await self._hotplug.stop()
            self._hotplug_registered = False
        self._refresh_requested = False
        refresh, self._refresh_task = self._refresh_task, None
        if refresh is not asyncio.current_task():
            await cancel_task(refresh)
        followup, self._followup_task = self._followup_task, None
        await cancel_task(followup)
        self._events.clear()
        self._devices.clear()
        self._running = False
        logger.info("Device reconciler stopped")

    async def _on_usb_attach(self, vid: str, pid: str) -> None:
        await self.refresh_device_by_vid_pid(vid, pid)

    async def _on_usb_detach(self, vid: str, pid: str) -> None:
        await self.check_for_disconnected_devices()

    # =========================================================================
    # Subscriptions and queries
    # =========================================================================

    def on_device_connect(self, handler: DeviceHandler) -> Subscription:
        return self._events.on_device_connect(handler)

    def on_device_disconnect(self, handler: DeviceHandler) -> Subscription:
        return self._events.on_device_disconnect(handler)

    def get_devices(self) -> List[TerminalDevice]:
        return list(self._devices.values())

    def get_device(self, device_id: str) -> Optional[TerminalDevice]:
        return self._devices.get(device_id)

    def get_default_device(self, device_type: DeviceType) -> Optional[TerminalDevice]:
        for device in self._devices.values():
            if device.device_type is device_type and device.is_default:
                return device
        return None

    def get_default_device_id(self, device_type: DeviceType) -> Optional[str]:
        device = self.get_default_device(device_type)
        return device.id if device else None

    def get_devices_by_type(self, device_type: DeviceType) -> List[TerminalDevice]:
        return [d for d in self._devices.values() if d.device_type is device_type]

    # =========================================================================
    # Scans
    # =========================================================================

    async def _detect(self) -> List[TerminalDevice]:
        detected = await self._detector.detect()
        return merge_saved_config(detected, self._config)

    async def _wait_for_refresh(self) -> None:
        task = self._refresh_task
        if task is not None and not task.done():
            await self._join_refresh(task)

    async def refresh_devices(self) -> None:
        """Full scan; joins the in-flight scan instead of overlapping it."""
        task = self._refresh_task
        if task is not None and not task.done():
            self._refresh_requested = True
            await self._join_refresh(task)
            return

        self._refresh_requested = False
        task = asyncio.get_running_loop().create_task(self._full_refresh())
        task.add_done_callback(self._after_refresh)
        self._refresh_task = task
        await self._join_refresh(task)

    async def _join_refresh(self, task: asyncio.Task) -> None:
        try:
            await asyncio.shield(task)
        except asyncio.CancelledError:
            # Scan abandoned by stop(); only re-raise if the caller was cancelled
            if not task.cancelled():
                raise

    def _after_refresh(self, task: asyncio.Task) -> None:
        if not self._refresh_requested or task.cancelled():
            return
        self._refresh_requested = False
        self._followup_task = create_logged_task(
            self._followup_refresh(), logger=logger, context="coalesced-refresh",
        )

    async def _followup_refresh(self) -> None:
        await asyncio.sleep(self._coalesce_delay)
        await self.refresh_devices()

    async def _full_refresh(self) -> None:
        try:
            devices = await self._detect()
        except Exception:
            logger.exception("Error refreshing devices")
            return

        for device in devices:
            existing = self._devices.get(device.id)
            if existing is None:
                self._devices[device.id] = device
                logger.info("Device connected: %s (%s)", device.id, device.device_type.value)
                await self._events.emit_device_connect(device)
            elif _meta_changed(existing, device):
                self._devices[device.id] = device
                logger.info("Device reconfigured: %s (%s)", device.id, device.device_type.value)
                await self._events.emit_device_connect(device)

        current_ids = {d.id for d in devices}
        for device_id in [i for i in self._devices if i not in current_ids]:
            await self._remove(device_id, "no longer detected")

    async def _remove(self, device_id: str, reason: str) -> None:
        device = self._devices.pop(device_id, None)
        if device is None:
            return
        logger.info("Device disconnected: %s (%s)", device_id, reason)
        await self._events.emit_device_disconnect(device)

    async def refresh_device_by_vid_pid(self, vid: UsbId, pid: UsbId) -> None:
        """Targeted add/update for one vid/pid, used on USB attach."""
        await self._wait_for_refresh()
        target_vid, target_pid = to_hex_id(vid), to_hex_id(pid)
        try:
            devices = await self._detect()
        except Exception:
            logger.exception("Error in targeted refresh for %s:%s", target_vid, target_pid)
            return

        for device in devices:
            if not device.matches(target_vid, target_pid):
                continue
            existing = self._devices.get(device.id)
            if existing is None:
                self._devices[device.id] = device
                logger.info("Added device via targeted refresh: %s", device.id)
                await self._events.emit_device_connect(device)
            elif _meta_changed(existing, device):
                self._devices[device.id] = device
                logger.info("Updated device via targeted refresh: %s", device.id)
                await self._events.emit_device_connect(device)

    async def check_for_disconnected_devices(self) -> None:
        """Remove mapped devices that are no longer detected, used on USB detach."""
        await self._wait_for_refresh()
        try:
            devices = await self._detect()
        except Exception:
            logger.exception("Error checking for disconnected devices")
            return

        current_ids = {d.id for d in devices}
        for device_id in [i for i in self._devices if i not in current_ids]:
            await self._remove(device_id, "detached")

    async def refresh_device_config(self, vid: UsbId, pid: UsbId) -> None:
        """Re-apply saved config to one vid/pid after a config mutation."""
        await self._wait_for_refresh()
        target_vid, target_pid = to_hex_id(vid), to_hex_id(pid)
        try:
            devices = await self._detect()
        except Exception:
            logger.exception("Error refreshing config for %s:%s", target_vid, target_pid)
            return

        targets = [d for d in devices if d.matches(target_vid, target_pid)]
        mapped_ids = [
            device_id for device_id, device in self._devices.items()
            if device.matches(target_vid, target_pid)
        ]

        if not targets:
            for device_id in mapped_ids:
                await self._remove(device_id, "config refresh found no device")
            return

        for device in targets:
            existing = self._devices.get(device.id)
            if existing is None:
                continue
            if (
                existing.device_type is not DeviceType.UNASSIGNED
                and device.device_type is DeviceType.UNASSIGNED
            ):
                # Managers must see the old type to tear down adapters and
                # per-device subscriptions.
                logger.info("Device %s lost its configuration", device.id)
                await self._events.emit_device_disconnect(existing)
            if _meta_changed(existing, device, include_labels=True):
                self._devices[device.id] = device
                logger.info("Updated device config: %s", device.id)
                await self._events.emit_device_connect(device)

    # =========================================================================
    # Configuration mutators
    # =========================================================================

    async def set_device_config(self, vid: UsbId, pid: UsbId, config: DeviceConfig) -> bool:
        try:
            self._config.save(vid, pid, config)
        except (OSError, TypeError, ValueError) as exc:
            logger.error("Failed to set device config for %s:%s: %s", vid, pid, exc)
            return False
        await self.refresh_device_config(vid, pid)
        return True

    async def update_device_config(
        self,
        vid: UsbId,
        pid: UsbId,
        partial: Mapping[str, Any],
    ) -> Optional[DeviceConfig]:
        result = self._config.update(vid, pid, partial)
        if result is not None:
            await self.refresh_device_config(vid, pid)
        return result

    async def delete_device_config(self, vid: UsbId, pid: UsbId) -> bool:
        deleted = self._config.delete(vid, pid)
        if deleted:
            await self.refresh_device_config(vid, pid)
        return deleted

    async def delete_all_device_configs(self) -> bool:
        """Delete every config, refreshing each currently mapped vid/pid."""
        pairs = {(d.vid, d.pid) for d in self._devices.values()}
        for vid, pid in sorted(pairs):
            self._config.delete(vid, pid)
            await self.refresh_device_config(vid, pid)
        self._config.clear_all()
        return True

    async def set_device_as_default(self, device_id: str) -> bool:
        device = self.get_device(device_id)
        if device is None:
            logger.error("Device %s not found", device_id)
            return False
        if device.device_type is DeviceType.UNASSIGNED:
            logger.error("Cannot set unassigned device %s as default", device_id)
            return False

        if not self._config.has(device.vid, device.pid):
            # Detected with capability defaults only; persist them first.
            self._config.save(device.vid, device.pid, device.meta.copy())
        if not self._config.set_as_default(device.vid, device.pid, device.device_type):
            return False
        # Full scan: another device may have lost its default flag.
        await self.refresh_devices()
        return True

    async def unset_device_as_default(self, device_id: str) -> bool:
        device = self.get_device(device_id)
        if device is None:
            logger.error("Device %s not found", device_id)
            return False
        if not self._config.unset_as_default(device.vid, device.pid):
            return False
        await self.refresh_device_config(device.vid, device.pid)
        return True

    # =========================================================================
    # Configuration readers
    # =========================================================================

    def get_device_config(self, vid: UsbId, pid: UsbId) -> Optional[DeviceConfig]:
        return self._config.get(vid, pid)

    def get_all_device_configs(self) -> Dict[str, DeviceConfig]:
        return self._config.all()

    def has_device_config(self, vid: UsbId, pid: UsbId) -> bool:
        return self._config.has(vid, pid)

    def get_configured_device_count(self) -> int:
        return self._config.count()


__all__ = ["DEFAULT_COALESCE_DELAY", "DeviceReconciler"]
