"""
Wiring for a complete device stack.

``create_device_managers`` builds one reconciler and the three capability
managers around a shared event bus and config store.

Usage:
    managers = create_device_managers(load_settings())
    async with managers:
        await managers.scanners.scan_from_default(print)
        ...
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..core.devices.config_store import DeviceConfigStore
from ..core.devices.detector import DeviceDetector
from ..core.devices.events import DeviceEventBus
from ..core.devices.reconciler import DeviceReconciler
from ..core.devices.storage import JsonFileStore, KeyValueStore
from ..core.devices.usb_hotplug import UsbHotplugMonitor
from ..core.logging_utils import get_module_logger
from ..core.settings import DeviceSettings
from ..core.transports.printer.factory import PrinterAdapterFactory
from .capability_manager import AdapterBuilder
from .printer_manager import PrinterManager
from .scale_manager import ScaleManager
from .scanner_manager import ScannerManager

logger = get_module_logger("DeviceManagers")


@dataclass
class DeviceManagers:
    reconciler: DeviceReconciler
    scanners: ScannerManager
    scales: ScaleManager
    printers: PrinterManager

    async def start(self) -> None:
        await self.reconciler.start()

    async def stop(self) -> None:
        await self.scanners.close()
        await self.scales.close()
        await self.printers.close()
        await self.reconciler.stop()
        logger.info("Device managers stopped")

    async def __aenter__(self) -> "DeviceManagers":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.stop()
        return False


def create_device_managers(
    settings: Optional[DeviceSettings] = None,
    *,
    store: Optional[KeyValueStore] = None,
    detector: Optional[DeviceDetector] = None,
    hotplug_monitor: Optional[UsbHotplugMonitor] = None,
    printer_factory: Optional[PrinterAdapterFactory] = None,
    scanner_adapter_builder: Optional[AdapterBuilder] = None,
    scale_adapter_builder: Optional[AdapterBuilder] = None,
) -> DeviceManagers:
    settings = settings or DeviceSettings()
    if store is None:
        store = JsonFileStore(settings.storage_path)

    reconciler = DeviceReconciler(
        detector=detector,
        config_store=DeviceConfigStore(store),
        event_bus=DeviceEventBus(),
        hotplug_monitor=hotplug_monitor,
        enable_hotplug=settings.hotplug_enabled,
        hotplug_interval=settings.hotplug_interval,
        coalesce_delay=settings.refresh_coalesce_delay,
    )
    scanners = ScannerManager(
        reconciler,
        retry_options=settings.scanner_retry,
        keep_alive_interval=settings.keep_alive_interval,
        default_timeout=settings.scan_timeout,
        adapter_builder=scanner_adapter_builder,
    )
    scales = ScaleManager(
        reconciler,
        retry_options=settings.scale_retry,
        keep_alive_interval=settings.keep_alive_interval,
        default_timeout=settings.weight_timeout,
        adapter_builder=scale_adapter_builder,
    )
    printers = PrinterManager(reconciler, adapter_factory=printer_factory)
    return DeviceManagers(reconciler, scanners, scales, printers)


__all__ = ["DeviceManagers", "create_device_managers"]
