"""
Device detector - one scan of attached USB/serial hardware.

USB enumeration comes from pyusb and serial ports from pyserial; both are
behind small backend protocols so tests can feed fixed device lists. The
detector returns fresh ``TerminalDevice`` objects carrying the
capability-derived default config; ``merge_saved_config`` then overlays
whatever is persisted for each vid/pid.
"""

from __future__ import annotations

import asyncio
import re
import sys
from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, List, Optional, Protocol

import serial.tools.list_ports
import usb.core
import usb.util

from ..logging_utils import get_module_logger
from .config_store import DeviceConfigStore
from .types import Capability, TerminalDevice, default_config_for, make_device_id, to_hex_id

logger = get_module_logger("DeviceDetector")

# HID, hub, smart card, video, wireless controller, miscellaneous
EXCLUDED_USB_CLASSES: FrozenSet[int] = frozenset({3, 9, 11, 14, 224, 239})
USB_PRINTER_CLASS = 7
SPOOLER_USB_PORT = re.compile(r"^USB\d+$")


# =========================================================================
# Backend records
# =========================================================================

@dataclass(frozen=True)
class UsbDeviceInfo:
    """One enumerated USB device."""
    vid: int
    pid: int
    device_class: int = 0
    interface_classes: FrozenSet[int] = field(default_factory=frozenset)
    bus: Optional[int] = None
    address: Optional[int] = None
    manufacturer: str = ""
    product: str = ""
    serial_number: str = ""

    @property
    def is_printer(self) -> bool:
        return self.device_class == USB_PRINTER_CLASS or USB_PRINTER_CLASS in self.interface_classes


@dataclass(frozen=True)
class SerialPortInfo:
    """One enumerated serial port with its USB ids, when it has them."""
    path: str
    vid: Optional[int] = None
    pid: Optional[int] = None
    manufacturer: str = ""
    serial_number: str = ""
    description: str = ""


@dataclass(frozen=True)
class SpoolerPrinterInfo:
    """A printer queue registered with the OS print spooler."""
    name: str
    port_name: str


class UsbBackend(Protocol):
    def list_devices(self) -> List[UsbDeviceInfo]: ...


class SerialPortBackend(Protocol):
    def list_ports(self) -> List[SerialPortInfo]: ...


class SpoolerBackend(Protocol):
    def list_printers(self) -> List[SpoolerPrinterInfo]: ...


# =========================================================================
# Default backends
# =========================================================================

def _usb_string(device, index: int) -> str:
    if not index:
        return ""
    try:
        return usb.util.get_string(device, index) or ""
    except (usb.core.USBError, ValueError, NotImplementedError):
        # Usually a permissions problem; strings are best-effort.
        return ""


class PyUsbBackend:
    """USB enumeration through pyusb/libusb."""

    def list_devices(self) -> List[UsbDeviceInfo]:
        try:
            found = list(usb.core.find(find_all=True))
        except usb.core.NoBackendError as exc:
            logger.warning("No libusb backend available: %s", exc)
            return []

        devices: List[UsbDeviceInfo] = []
        for dev in found:
            interface_classes = set()
            try:
                for cfg in dev:
                    for intf in cfg:
                        interface_classes.add(intf.bInterfaceClass)
            except usb.core.USBError as exc:
                logger.debug("Could not read configuration of %04x:%04x: %s",
                             dev.idVendor, dev.idProduct, exc)
            devices.append(UsbDeviceInfo(
                vid=dev.idVendor,
                pid=dev.idProduct,
                device_class=dev.bDeviceClass,
                interface_classes=frozenset(interface_classes),
                bus=dev.bus,
                address=dev.address,
                manufacturer=_usb_string(dev, dev.iManufacturer),
                product=_usb_string(dev, dev.iProduct),
                serial_number=_usb_string(dev, dev.iSerialNumber),
            ))
        return devices


class PySerialPortBackend:
    """Serial port enumeration through ``serial.tools.list_ports``."""

    def list_ports(self) -> List[SerialPortInfo]:
        return [
            SerialPortInfo(
                path=port.device,
                vid=port.vid,
                pid=port.pid,
                manufacturer=port.manufacturer or "",
                serial_number=port.serial_number or "",
                description=port.description or "",
            )
            for port in serial.tools.list_ports.comports()
        ]


# =========================================================================
# Detector
# =========================================================================

def filter_usb_devices(devices: Iterable[UsbDeviceInfo]) -> List[UsbDeviceInfo]:
    """Drop system-class devices (hubs, HID, cameras...)."""
    return [d for d in devices if d.device_class not in EXCLUDED_USB_CLASSES]


class DeviceDetector:
    """Produces the list of currently attached terminal peripherals."""

    def __init__(
        self,
        usb_backend: Optional[UsbBackend] = None,
        serial_backend: Optional[SerialPortBackend] = None,
        spooler_backend: Optional[SpoolerBackend] = None,
        platform: str = sys.platform,
    ) -> None:
        self._usb = usb_backend or PyUsbBackend()
        self._serial = serial_backend or PySerialPortBackend()
        self._platform = platform
        if spooler_backend is None and platform == "win32":
            from ..transports.printer.spooler import Win32SpoolerBackend
            spooler_backend = Win32SpoolerBackend()
        self._spooler = spooler_backend

    @property
    def usb_backend(self) -> UsbBackend:
        return self._usb

    async def detect(self) -> List[TerminalDevice]:
        """Run one detection scan off the event loop."""
        return await asyncio.to_thread(self.detect_sync)

    def detect_sync(self) -> List[TerminalDevice]:
        usb_devices = filter_usb_devices(self._usb.list_devices())
        devices: List[TerminalDevice] = []
        if self._spooler is not None:
            devices.extend(self._spooler_printers(usb_devices))
        else:
            devices.extend(self._usb_printers(usb_devices))
        devices.extend(self._serial_devices(usb_devices))
        logger.debug(
            "Detection found %d device(s) (%d usb candidates)",
            len(devices), len(usb_devices),
        )
        return devices

    def _spooler_printers(self, usb_devices: List[UsbDeviceInfo]) -> List[TerminalDevice]:
        usb_printer = next((d for d in usb_devices if d.is_printer), None)
        if usb_printer is None:
            return []
        queue = next(
            (p for p in self._spooler.list_printers() if SPOOLER_USB_PORT.match(p.port_name)),
            None,
        )
        if queue is None:
            logger.debug("USB printer %04x:%04x has no spooler queue on a USB port",
                         usb_printer.vid, usb_printer.pid)
            return []
        return [self._build(
            usb_printer,
            path=queue.port_name,
            name=queue.name,
            capabilities=frozenset({Capability.WRITE}),
        )]

    def _usb_printers(self, usb_devices: List[UsbDeviceInfo]) -> List[TerminalDevice]:
        return [
            self._build(
                info,
                path=f"{info.bus}:{info.address}",
                name=info.product,
                capabilities=frozenset({Capability.WRITE}),
            )
            for info in usb_devices
            if info.is_printer
        ]

    def _serial_devices(self, usb_devices: List[UsbDeviceInfo]) -> List[TerminalDevice]:
        by_ids = {(d.vid, d.pid): d for d in usb_devices}
        devices = []
        for port in self._serial.list_ports():
            if port.vid is None or port.pid is None:
                continue
            info = by_ids.get((port.vid, port.pid))
            if info is None:
                continue
            device = self._build(
                info,
                path=port.path,
                name=port.description,
                capabilities=frozenset({Capability.READ}),
            )
            device.manufacturer = port.manufacturer or info.manufacturer
            device.serial_number = port.serial_number or info.serial_number
            devices.append(device)
        return devices

    @staticmethod
    def _build(
        info: UsbDeviceInfo,
        *,
        path: str,
        name: str,
        capabilities: FrozenSet[Capability],
    ) -> TerminalDevice:
        return TerminalDevice(
            id=make_device_id(info.vid, info.pid),
            vid=to_hex_id(info.vid),
            pid=to_hex_id(info.pid),
            path=path,
            capabilities=capabilities,
            meta=default_config_for(capabilities),
            name=name,
            manufacturer=info.manufacturer,
            serial_number=info.serial_number,
        )


def merge_saved_config(
    devices: Iterable[TerminalDevice],
    config_store: DeviceConfigStore,
) -> List[TerminalDevice]:
    """Overlay persisted config, or reset to the capability default."""
    merged = []
    for device in devices:
        saved = config_store.get(device.vid, device.pid)
        if saved is not None:
            device.meta = saved
        else:
            device.meta = default_config_for(device.capabilities)
        merged.append(device)
    return merged


__all__ = [
    "DeviceDetector",
    "EXCLUDED_USB_CLASSES",
    "PySerialPortBackend",
    "PyUsbBackend",
    "SerialPortBackend",
    "SerialPortInfo",
    "SpoolerBackend",
    "SpoolerPrinterInfo",
    "USB_PRINTER_CLASS",
    "UsbBackend",
    "UsbDeviceInfo",
    "filter_usb_devices",
    "merge_saved_config",
]
