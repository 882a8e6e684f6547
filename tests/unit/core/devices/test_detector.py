"""Unit tests for DeviceDetector."""

from unittest.mock import MagicMock, patch

import pytest

from pos_devices.core.devices.config_store import DeviceConfigStore
from pos_devices.core.devices.detector import (
    DeviceDetector,
    PySerialPortBackend,
    PyUsbBackend,
    SerialPortInfo,
    SpoolerPrinterInfo,
    UsbDeviceInfo,
    filter_usb_devices,
    merge_saved_config,
)
from pos_devices.core.devices.storage import MemoryStore
from pos_devices.core.devices.types import (
    BAUD_NOT_SUPPORTED,
    Capability,
    DeviceConfig,
    DeviceType,
)
from tests.infrastructure.mocks.usb_mocks import (
    FakeSerialBackend,
    FakeSpoolerBackend,
    FakeUsbBackend,
)

SCANNER = UsbDeviceInfo(vid=0x26F1, pid=0x5650, device_class=2, manufacturer="Honeywell")
PRINTER = UsbDeviceInfo(vid=0x04B8, pid=0x0E15, interface_classes=frozenset({7}),
                        bus=1, address=7, product="TM-T20")
KEYBOARD = UsbDeviceInfo(vid=0x046D, pid=0xC31C, device_class=3)
HUB = UsbDeviceInfo(vid=0x1D6B, pid=0x0002, device_class=9)


def detector(usb=(), ports=(), spooler=None, platform="linux"):
    return DeviceDetector(
        usb_backend=FakeUsbBackend(list(usb)),
        serial_backend=FakeSerialBackend(list(ports)),
        spooler_backend=spooler,
        platform=platform,
    )


class TestFiltering:

    def test_system_classes_are_excluded(self):
        kept = filter_usb_devices([SCANNER, PRINTER, KEYBOARD, HUB])
        assert kept == [SCANNER, PRINTER]

    def test_printer_by_device_or_interface_class(self):
        assert PRINTER.is_printer
        assert UsbDeviceInfo(vid=1, pid=2, device_class=7).is_printer
        assert not SCANNER.is_printer


class TestDetection:

    def test_serial_port_matched_to_usb_device(self):
        ports = [
            SerialPortInfo(path="/dev/ttyACM0", vid=0x26F1, pid=0x5650, description="Scanner"),
            SerialPortInfo(path="/dev/ttyS0"),
            SerialPortInfo(path="/dev/ttyUSB9", vid=0x9999, pid=0x0001),
        ]

        devices = detector(usb=[SCANNER], ports=ports).detect_sync()

        assert len(devices) == 1
        device = devices[0]
        assert device.id == "device_0x26f1_0x5650"
        assert device.vid == "0x26f1"
        assert device.path == "/dev/ttyACM0"
        assert device.capabilities == frozenset({Capability.READ})
        assert device.device_type is DeviceType.UNASSIGNED
        assert device.meta.baudrate == 9600
        assert device.manufacturer == "Honeywell"

    def test_serial_port_of_excluded_device_is_skipped(self):
        ports = [SerialPortInfo(path="/dev/ttyACM1", vid=0x046D, pid=0xC31C)]
        assert detector(usb=[KEYBOARD], ports=ports).detect_sync() == []

    def test_usb_printer_direct(self):
        devices = detector(usb=[PRINTER, SCANNER]).detect_sync()

        assert [d.id for d in devices] == ["device_0x4b8_0xe15"]
        printer = devices[0]
        assert printer.path == "1:7"
        assert printer.name == "TM-T20"
        assert printer.capabilities == frozenset({Capability.WRITE})
        assert printer.device_type is DeviceType.PRINTER
        assert printer.meta.baudrate == BAUD_NOT_SUPPORTED

    def test_spooler_printer_uses_usb_port_queue(self):
        spooler = FakeSpoolerBackend([
            SpoolerPrinterInfo(name="Microsoft Print to PDF", port_name="PORTPROMPT:"),
            SpoolerPrinterInfo(name="EPSON TM-T20", port_name="USB001"),
        ])

        devices = detector(usb=[PRINTER], spooler=spooler, platform="win32").detect_sync()

        assert len(devices) == 1
        assert devices[0].path == "USB001"
        assert devices[0].name == "EPSON TM-T20"

    def test_spooler_without_usb_queue(self):
        spooler = FakeSpoolerBackend([SpoolerPrinterInfo(name="Fax", port_name="SHRFAX:")])
        assert detector(usb=[PRINTER], spooler=spooler).detect_sync() == []

    @pytest.mark.asyncio
    async def test_detect_runs_off_loop(self):
        devices = await detector(usb=[PRINTER]).detect()
        assert len(devices) == 1


class TestMergeSavedConfig:

    def test_saved_config_overlays_defaults(self):
        store = DeviceConfigStore(MemoryStore())
        store.save("0x26f1", "0x5650", DeviceConfig(DeviceType.SCANNER, "Honeywell", "1900g", 115200, True))
        ports = [SerialPortInfo(path="/dev/ttyACM0", vid=0x26F1, pid=0x5650)]

        device = merge_saved_config(detector(usb=[SCANNER], ports=ports).detect_sync(), store)[0]

        assert device.device_type is DeviceType.SCANNER
        assert device.meta.baudrate == 115200
        assert device.is_default

    def test_missing_config_resets_to_capability_default(self):
        store = DeviceConfigStore(MemoryStore())
        device = detector(usb=[PRINTER]).detect_sync()[0]
        device.meta = DeviceConfig(DeviceType.SCALE)

        merged = merge_saved_config([device], store)[0]

        assert merged.device_type is DeviceType.PRINTER


class TestDefaultBackends:

    def test_pyserial_backend(self):
        port = MagicMock(device="/dev/ttyACM0", vid=0x26F1, pid=0x5650,
                         manufacturer=None, serial_number="SN1", description="Scanner")
        with patch("serial.tools.list_ports.comports", return_value=[port]):
            ports = PySerialPortBackend().list_ports()

        assert ports == [SerialPortInfo(path="/dev/ttyACM0", vid=0x26F1, pid=0x5650,
                                        manufacturer="", serial_number="SN1", description="Scanner")]

    def test_pyusb_backend_without_libusb(self):
        import usb.core

        with patch("usb.core.find", side_effect=usb.core.NoBackendError("No backend available")):
            assert PyUsbBackend().list_devices() == []

    def test_pyusb_backend_collects_interface_classes(self):
        interface = MagicMock(bInterfaceClass=7)
        dev = MagicMock(idVendor=0x04B8, idProduct=0x0E15, bDeviceClass=0, bus=1, address=3,
                        iManufacturer=0, iProduct=0, iSerialNumber=0)
        dev.__iter__.return_value = [[interface]]

        with patch("usb.core.find", return_value=iter([dev])):
            devices = PyUsbBackend().list_devices()

        assert devices == [UsbDeviceInfo(vid=0x04B8, pid=0x0E15, device_class=0,
                                         interface_classes=frozenset({7}), bus=1, address=3)]
