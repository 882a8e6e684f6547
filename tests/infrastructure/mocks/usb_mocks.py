"""Fake enumeration backends and adapters for device orchestration tests.

The backends hold plain lists that tests mutate to simulate plugging and
unplugging hardware; the adapters record what the managers do with them
and let tests push data or errors from the "device" side.
"""

from __future__ import annotations

import asyncio
from typing import Dict, List, Optional

from pos_devices.core.devices.detector import (
    DeviceDetector,
    SerialPortInfo,
    SpoolerPrinterInfo,
    UsbDeviceInfo,
)
from pos_devices.core.devices.types import DeviceConfig, TerminalDevice
from pos_devices.core.transports.base_transport import ReadableAdapter, WritableAdapter


# =============================================================================
# Enumeration backends
# =============================================================================

class FakeUsbBackend:
    def __init__(self, devices: Optional[List[UsbDeviceInfo]] = None):
        self.devices: List[UsbDeviceInfo] = list(devices or [])
        self.calls = 0

    def list_devices(self) -> List[UsbDeviceInfo]:
        self.calls += 1
        return list(self.devices)


class FakeSerialBackend:
    def __init__(self, ports: Optional[List[SerialPortInfo]] = None):
        self.ports: List[SerialPortInfo] = list(ports or [])

    def list_ports(self) -> List[SerialPortInfo]:
        return list(self.ports)


class FakeSpoolerBackend:
    def __init__(self, printers: Optional[List[SpoolerPrinterInfo]] = None):
        self.printers: List[SpoolerPrinterInfo] = list(printers or [])
        self.jobs: List[tuple] = []

    def list_printers(self) -> List[SpoolerPrinterInfo]:
        return list(self.printers)

    def write_raw(self, printer_name: str, data: bytes, job_name: str = "Receipt") -> int:
        self.jobs.append((printer_name, data, job_name))
        return len(data)


class FakeHardware:
    """USB + serial backends kept in step, as real enumeration would be."""

    def __init__(self) -> None:
        self.usb = FakeUsbBackend()
        self.serial = FakeSerialBackend()

    def detector(self) -> DeviceDetector:
        return DeviceDetector(usb_backend=self.usb, serial_backend=self.serial, platform="linux")

    def plug_serial(self, vid: int, pid: int, path: str, description: str = "") -> None:
        self.usb.devices.append(UsbDeviceInfo(vid=vid, pid=pid, device_class=2))
        self.serial.ports.append(SerialPortInfo(path=path, vid=vid, pid=pid, description=description))

    def plug_printer(self, vid: int, pid: int, bus: int = 1, address: int = 4) -> None:
        self.usb.devices.append(UsbDeviceInfo(
            vid=vid, pid=pid, device_class=0,
            interface_classes=frozenset({7}), bus=bus, address=address, product="Receipt Printer",
        ))

    def unplug(self, vid: int, pid: int) -> None:
        self.usb.devices = [d for d in self.usb.devices if (d.vid, d.pid) != (vid, pid)]
        self.serial.ports = [p for p in self.serial.ports if (p.vid, p.pid) != (vid, pid)]


class GatedDetector:
    """Detector whose scans block until released, counting overlap."""

    def __init__(self, inner: DeviceDetector):
        self._inner = inner
        self.gate = asyncio.Event()
        self.gate.set()
        self.calls = 0
        self.in_flight = 0
        self.max_in_flight = 0

    @property
    def usb_backend(self):
        return self._inner.usb_backend

    async def detect(self) -> List[TerminalDevice]:
        self.calls += 1
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await self.gate.wait()
            return self._inner.detect_sync()
        finally:
            self.in_flight -= 1


# =============================================================================
# Adapters
# =============================================================================

class FakeReadAdapter(ReadableAdapter):
    """Serial reader stand-in; ``emit`` plays the part of incoming bytes."""

    def __init__(
        self,
        device: TerminalDevice,
        fail_open: Optional[Exception] = None,
        open_delay: float = 0.0,
        **kwargs,
    ):
        super().__init__(device)
        self.baudrate = device.meta.baudrate
        self.options = kwargs
        self.fail_open = fail_open
        self.open_delay = open_delay
        self.open_calls = 0
        self.close_calls = 0
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    async def open(self) -> None:
        self.open_calls += 1
        if self.open_delay:
            await asyncio.sleep(self.open_delay)
        if self.fail_open is not None:
            raise self.fail_open
        self._open = True

    async def close(self) -> None:
        self.close_calls += 1
        self._open = False

    async def emit(self, line: str) -> None:
        await self._dispatch_line(line)

    async def fail(self, error: Exception) -> None:
        await self._report_error(error)


class FakeAdapterBuilder:
    """Adapter builder for the read managers; remembers every adapter built."""

    def __init__(self, fail_open: Optional[Exception] = None, open_delay: float = 0.0):
        self.fail_open = fail_open
        self.open_delay = open_delay
        self.created: List[FakeReadAdapter] = []
        self.latest: Dict[str, FakeReadAdapter] = {}

    def __call__(self, device: TerminalDevice, **kwargs) -> FakeReadAdapter:
        adapter = FakeReadAdapter(
            device, fail_open=self.fail_open, open_delay=self.open_delay, **kwargs,
        )
        self.created.append(adapter)
        self.latest[device.id] = adapter
        return adapter


class FakePrinterAdapter(WritableAdapter):
    def __init__(self, device: TerminalDevice, fail_with: Optional[Exception] = None):
        super().__init__(device)
        self.fail_with = fail_with
        self.jobs: List[tuple] = []
        self.closed = False
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    async def open(self) -> None:
        self._open = True

    async def close(self) -> None:
        self._open = False
        self.closed = True

    async def write(self, data: str, is_image: bool = False) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.jobs.append((data, is_image))


class FakePrinterBuilder:
    def __init__(self, fail_with: Optional[Exception] = None):
        self.fail_with = fail_with
        self.created: List[FakePrinterAdapter] = []

    def __call__(self, device: TerminalDevice) -> FakePrinterAdapter:
        adapter = FakePrinterAdapter(device, fail_with=self.fail_with)
        self.created.append(adapter)
        return adapter


def save_config(config_store, vid, pid, device_type, default=False, baudrate=9600):
    """Persist a config the way an operator would through the UI."""
    config_store.save(vid, pid, DeviceConfig(device_type, "Acme", "M1", baudrate, default))


__all__ = [
    "FakeAdapterBuilder",
    "FakeHardware",
    "FakePrinterAdapter",
    "FakePrinterBuilder",
    "FakeReadAdapter",
    "FakeSerialBackend",
    "FakeSpoolerBackend",
    "FakeUsbBackend",
    "GatedDetector",
    "save_config",
]
