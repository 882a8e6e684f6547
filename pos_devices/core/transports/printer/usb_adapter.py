"""
USB-direct printer adapter (pyusb).

Claims the printer's bulk OUT endpoint for the duration of one job and
always releases the device afterwards.
"""

import asyncio
import sys
from typing import Optional, Protocol

import usb.core
import usb.util

from ...devices.detector import USB_PRINTER_CLASS
from ...devices.types import DeviceType, TerminalDevice
from ...errors import AdapterError, DeviceTypeMismatchError
from ...logging_utils import get_module_logger
from ..base_transport import WritableAdapter
from .escpos_encoder import EscPosEncoder

logger = get_module_logger("UsbPrinter")

DEFAULT_USB_TIMEOUT_MS = 5000


class UsbPrinterIO(Protocol):
    def send(self, vid: int, pid: int, data: bytes) -> None: ...


class PyUsbPrinterIO:
    """Bulk transfer to the first OUT endpoint of the printer interface."""

    def __init__(self, timeout_ms: int = DEFAULT_USB_TIMEOUT_MS):
        self.timeout_ms = timeout_ms

    def send(self, vid: int, pid: int, data: bytes) -> None:
        device = usb.core.find(idVendor=vid, idProduct=pid)
        if device is None:
            raise AdapterError(f"USB printer {vid:04x}:{pid:04x} not found")
        try:
            try:
                config = device.get_active_configuration()
            except usb.core.USBError:
                device.set_configuration()
                config = device.get_active_configuration()

            interface = usb.util.find_descriptor(config, bInterfaceClass=USB_PRINTER_CLASS)
            if interface is None:
                interface = config[(0, 0)]

            if sys.platform.startswith("linux") and device.is_kernel_driver_active(interface.bInterfaceNumber):
                device.detach_kernel_driver(interface.bInterfaceNumber)

            endpoint = usb.util.find_descriptor(
                interface,
                custom_match=lambda e: (
                    usb.util.endpoint_direction(e.bEndpointAddress) == usb.util.ENDPOINT_OUT
                ),
            )
            if endpoint is None:
                raise AdapterError(f"USB printer {vid:04x}:{pid:04x} has no OUT endpoint")
            endpoint.write(data, self.timeout_ms)
        finally:
            usb.util.dispose_resources(device)


class UsbPrinterAdapter(WritableAdapter):
    """Opens the USB device per job; ``open``/``close`` only track state."""

    def __init__(
        self,
        device: TerminalDevice,
        usb_io: Optional[UsbPrinterIO] = None,
        encoder: Optional[EscPosEncoder] = None,
    ):
        if device.device_type is not DeviceType.PRINTER:
            raise DeviceTypeMismatchError(device.id, "printer", device.device_type.value)
        super().__init__(device)
        self._log = logger.for_device(device.id)
        self._usb_io = usb_io or PyUsbPrinterIO()
        self._encoder = encoder or EscPosEncoder()
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    async def open(self) -> None:
        self._open = True

    async def close(self) -> None:
        self._open = False

    async def write(self, data: str, is_image: bool = False) -> None:
        vid, pid = int(self.device.vid, 16), int(self.device.pid, 16)
        try:
            job = await asyncio.to_thread(self._encoder.encode, data, is_image)
            await asyncio.to_thread(self._usb_io.send, vid, pid, job)
        except AdapterError:
            raise
        except Exception as e:
            self._log.error("USB print failed: %s", e)
            raise AdapterError(f"Printer error: {e}") from e
        self._log.debug("Printed %d bytes", len(job))


__all__ = ["PyUsbPrinterIO", "UsbPrinterAdapter", "UsbPrinterIO"]
