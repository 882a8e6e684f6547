"""
Printer manager.

Write-only counterpart of the read managers: one adapter per printer,
created on first print (or on connect for the default printer) and
dropped on disconnect. Adapter errors are published on the event bus but
do not close the adapter; disconnect handles cleanup.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from functools import partial
from typing import Dict, List, Optional, Tuple

from ..core.devices.reconciler import DeviceReconciler
from ..core.devices.types import (
    BAUD_NOT_SUPPORTED,
    Capability,
    DeviceConfig,
    DeviceType,
    TerminalDevice,
)
from ..core.errors import DeviceNotFoundError, DeviceTypeMismatchError, NoDefaultDeviceError
from ..core.logging_utils import get_module_logger
from ..core.transports.base_transport import WritableAdapter
from ..core.transports.printer.factory import PrinterAdapterFactory

logger = get_module_logger("PrinterManager")

TEST_RECEIPT = """
================================
         TEST PRINT
================================
Date: {date}
Device: {brand} {model}
Status: Print test successful

This is a test print to verify
that your printer is working
correctly.

Thank you!
================================


"""


class PrinterManager:
    """Owns printer adapters and the print entry points."""

    def __init__(
        self,
        reconciler: DeviceReconciler,
        adapter_factory: Optional[PrinterAdapterFactory] = None,
    ):
        self._reconciler = reconciler
        self._events = reconciler.event_bus
        self._factory = adapter_factory or PrinterAdapterFactory()
        self._adapters: Dict[str, WritableAdapter] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._subscriptions = [
            reconciler.on_device_connect(self._handle_connect),
            reconciler.on_device_disconnect(self._handle_disconnect),
        ]

    def _lock_for(self, device_id: str) -> asyncio.Lock:
        lock = self._locks.get(device_id)
        if lock is None:
            lock = self._locks[device_id] = asyncio.Lock()
        return lock

    async def print_to_device(self, device_id: str, data: str, is_image: bool = False) -> bool:
        device = self._reconciler.get_device(device_id)
        if device is None:
            raise DeviceNotFoundError(device_id)
        if device.device_type is not DeviceType.PRINTER:
            raise DeviceTypeMismatchError(device_id, "printer", device.device_type.value)

        adapter = await self.ensure_printer_adapter(device)
        try:
            await adapter.write(data, is_image)
        except Exception as e:
            logger.error("Print failed for device %s: %s", device_id, e)
            raise
        return True

    async def print_to_default(self, data: str, is_image: bool = False) -> bool:
        printer = self.get_default_printer()
        if printer is None:
            raise NoDefaultDeviceError("printer")
        return await self.print_to_device(printer.id, data, is_image)

    async def ensure_printer_adapter(self, device: TerminalDevice) -> WritableAdapter:
        """Open (once) the adapter for ``device``, configuring it as a printer if needed."""
        async with self._lock_for(device.id):
            adapter = self._adapters.get(device.id)
            if adapter is not None:
                return adapter

            if device.device_type is not DeviceType.PRINTER:
                self._configure_as_printer(device)

            adapter = self._factory.create(device)
            adapter.on_error(partial(self._handle_adapter_error, device.id))
            await adapter.open()
            self._adapters[device.id] = adapter
            logger.info("Printer adapter created for %s", device.id)
            return adapter

    def _configure_as_printer(self, device: TerminalDevice) -> None:
        store = self._reconciler.config_store
        changes = {"device_type": DeviceType.PRINTER, "baudrate": BAUD_NOT_SUPPORTED}
        if store.update(device.vid, device.pid, changes) is None:
            store.save(device.vid, device.pid, DeviceConfig(
                device_type=DeviceType.PRINTER,
                baudrate=BAUD_NOT_SUPPORTED,
            ))
        device.meta = device.meta.copy(device_type=DeviceType.PRINTER, baudrate=BAUD_NOT_SUPPORTED)
        device.capabilities = frozenset({Capability.WRITE})
        logger.info("Configured %s as a printer", device.id)

    async def _handle_adapter_error(self, device_id: str, error: BaseException) -> None:
        logger.error("Printer adapter error for %s: %s", device_id, error)
        await self._events.emit_device_error(device_id, error)

    async def close_printer_adapter(self, device_id: str) -> None:
        async with self._lock_for(device_id):
            adapter = self._adapters.pop(device_id, None)
            if adapter is None:
                return
            try:
                await adapter.close()
            except Exception as e:
                logger.error("Error closing printer adapter for %s: %s", device_id, e)

    async def close_all_printer_adapters(self) -> None:
        for device_id in list(self._adapters):
            await self.close_printer_adapter(device_id)

    def get_printer_devices(self) -> List[TerminalDevice]:
        return self._reconciler.get_devices_by_type(DeviceType.PRINTER)

    def get_default_printer(self) -> Optional[TerminalDevice]:
        return self._reconciler.get_default_device(DeviceType.PRINTER)

    def has_adapter(self, device_id: str) -> bool:
        return device_id in self._adapters

    async def test_print(self) -> Tuple[bool, Optional[str]]:
        """Print a test receipt on the default printer; never raises."""
        try:
            printer = self.get_default_printer()
            if printer is None:
                raise NoDefaultDeviceError("printer")
            receipt = TEST_RECEIPT.format(
                date=datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
                brand=printer.meta.brand or "Unknown",
                model=printer.meta.model,
            )
            logger.info("Starting test print on %s", printer.id)
            await self.print_to_device(printer.id, receipt, False)
        except Exception as e:
            logger.error("Test print failed: %s", e)
            return False, f"Test print failed: {e}"
        return True, None

    async def _handle_connect(self, device: TerminalDevice) -> None:
        if device.device_type is DeviceType.PRINTER and device.is_default:
            try:
                await self.ensure_printer_adapter(device)
            except Exception as e:
                logger.error("Failed to auto-create printer adapter for %s: %s", device.id, e)

    async def _handle_disconnect(self, device: TerminalDevice) -> None:
        await self.close_printer_adapter(device.id)

    async def close(self) -> None:
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions.clear()
        await self.close_all_printer_adapters()


__all__ = ["PrinterManager", "TEST_RECEIPT"]
