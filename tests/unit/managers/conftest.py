"""Fixtures for capability manager tests."""

import pytest

from pos_devices.core.transports.printer.factory import PrinterAdapterFactory
from pos_devices.managers import PrinterManager, ScaleManager, ScannerManager
from tests.infrastructure.mocks.usb_mocks import FakeAdapterBuilder, FakePrinterBuilder


@pytest.fixture
def adapter_builder():
    return FakeAdapterBuilder()


@pytest.fixture
def printer_builder():
    return FakePrinterBuilder()


@pytest.fixture
def scanners(reconciler, adapter_builder):
    return ScannerManager(reconciler, adapter_builder=adapter_builder, keep_alive_interval=30)


@pytest.fixture
def scales(reconciler, adapter_builder):
    return ScaleManager(reconciler, adapter_builder=adapter_builder)


@pytest.fixture
def printers(reconciler, printer_builder):
    return PrinterManager(reconciler, PrinterAdapterFactory(adapter_builder=printer_builder))
