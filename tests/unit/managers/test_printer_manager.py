"""Unit tests for PrinterManager."""

import pytest

from pos_devices.core.devices.types import BAUD_NOT_SUPPORTED, DeviceType
from pos_devices.core.errors import (
    AdapterError,
    DeviceNotFoundError,
    DeviceTypeMismatchError,
    NoDefaultDeviceError,
)
from pos_devices.core.transports.printer.factory import PrinterAdapterFactory
from pos_devices.managers import PrinterManager
from tests.infrastructure.mocks.usb_mocks import FakePrinterBuilder, save_config

PRINTER_ID = "device_0x4b8_0xe15"
SERIAL_ID = "device_0x26f1_0x5650"


@pytest.fixture
def printer_hw(hardware):
    hardware.plug_printer(0x04B8, 0x0E15)
    return hardware


class TestPrinting:

    @pytest.mark.asyncio
    async def test_print_to_device(self, printer_hw, reconciler, printers, printer_builder):
        await reconciler.start()

        assert await printers.print_to_device(PRINTER_ID, "Total 4.20") is True
        assert await printers.print_to_device(PRINTER_ID, "logo", is_image=True) is True

        assert len(printer_builder.created) == 1
        assert printer_builder.created[0].jobs == [("Total 4.20", False), ("logo", True)]
        assert printers.has_adapter(PRINTER_ID)

    @pytest.mark.asyncio
    async def test_unknown_and_wrong_type(self, printer_hw, reconciler, printers):
        printer_hw.plug_serial(0x26F1, 0x5650, "/dev/ttyACM0")
        await reconciler.start()

        with pytest.raises(DeviceNotFoundError):
            await printers.print_to_device("device_0x1_0x1", "x")
        with pytest.raises(DeviceTypeMismatchError):
            await printers.print_to_device(SERIAL_ID, "x")

    @pytest.mark.asyncio
    async def test_print_to_default(self, printer_hw, reconciler, config_store, printers, printer_builder):
        save_config(config_store, 0x04B8, 0x0E15, DeviceType.PRINTER, default=True,
                    baudrate=BAUD_NOT_SUPPORTED)
        await reconciler.start()

        await printers.print_to_default("hello")

        assert printer_builder.created[0].jobs == [("hello", False)]

    @pytest.mark.asyncio
    async def test_print_to_default_without_default(self, printer_hw, reconciler, printers):
        await reconciler.start()

        with pytest.raises(NoDefaultDeviceError):
            await printers.print_to_default("hello")

    @pytest.mark.asyncio
    async def test_write_failure_propagates(self, printer_hw, reconciler):
        builder = FakePrinterBuilder(fail_with=AdapterError("Printer error: out of paper"))
        printers = PrinterManager(reconciler, PrinterAdapterFactory(adapter_builder=builder))
        await reconciler.start()

        with pytest.raises(AdapterError, match="out of paper"):
            await printers.print_to_device(PRINTER_ID, "x")


class TestAdapters:

    @pytest.mark.asyncio
    async def test_default_printer_adapter_created_on_connect(
        self, printer_hw, reconciler, config_store, printers,
    ):
        save_config(config_store, 0x04B8, 0x0E15, DeviceType.PRINTER, default=True,
                    baudrate=BAUD_NOT_SUPPORTED)

        await reconciler.start()

        assert printers.has_adapter(PRINTER_ID)
        assert printers.get_default_printer().id == PRINTER_ID

    @pytest.mark.asyncio
    async def test_non_default_printer_is_lazy(self, printer_hw, reconciler, printers):
        await reconciler.start()

        assert printers.get_printer_devices()[0].id == PRINTER_ID
        assert not printers.has_adapter(PRINTER_ID)

    @pytest.mark.asyncio
    async def test_disconnect_closes_adapter(self, printer_hw, reconciler, printers, printer_builder):
        await reconciler.start()
        await printers.print_to_device(PRINTER_ID, "x")

        printer_hw.unplug(0x04B8, 0x0E15)
        await reconciler.check_for_disconnected_devices()

        assert printer_builder.created[0].closed
        assert not printers.has_adapter(PRINTER_ID)

    @pytest.mark.asyncio
    async def test_adapter_error_is_reported_not_closed(self, printer_hw, reconciler, printers, printer_builder):
        await reconciler.start()
        errors = []
        reconciler.event_bus.on_device_error(lambda device_id, error: errors.append((device_id, str(error))))
        await printers.print_to_device(PRINTER_ID, "x")

        await printer_builder.created[0]._report_error(AdapterError("paper jam"))

        assert errors == [(PRINTER_ID, "paper jam")]
        assert printers.has_adapter(PRINTER_ID)

    @pytest.mark.asyncio
    async def test_ensure_adapter_configures_unassigned_device(
        self, hardware, reconciler, config_store, printers,
    ):
        hardware.plug_serial(0x26F1, 0x5650, "/dev/ttyACM0")
        await reconciler.start()
        device = reconciler.get_device(SERIAL_ID)

        await printers.ensure_printer_adapter(device)

        saved = config_store.get("0x26f1", "0x5650")
        assert saved.device_type is DeviceType.PRINTER
        assert saved.baudrate == BAUD_NOT_SUPPORTED
        assert device.device_type is DeviceType.PRINTER
        assert device.can_write

    @pytest.mark.asyncio
    async def test_close_all(self, printer_hw, reconciler, printers, printer_builder):
        await reconciler.start()
        await printers.print_to_device(PRINTER_ID, "x")

        await printers.close()

        assert printer_builder.created[0].closed
        assert not printers.has_adapter(PRINTER_ID)


class TestTestPrint:

    @pytest.mark.asyncio
    async def test_success(self, printer_hw, reconciler, config_store, printers, printer_builder):
        save_config(config_store, 0x04B8, 0x0E15, DeviceType.PRINTER, default=True,
                    baudrate=BAUD_NOT_SUPPORTED)
        await reconciler.start()

        assert await printers.test_print() == (True, None)

        text, is_image = printer_builder.created[0].jobs[0]
        assert "TEST PRINT" in text
        assert "Device: Acme M1" in text
        assert is_image is False

    @pytest.mark.asyncio
    async def test_failure_is_returned(self, printer_hw, reconciler, printers):
        await reconciler.start()

        ok, error = await printers.test_print()

        assert ok is False
        assert error == "Test print failed: No default printer found"
