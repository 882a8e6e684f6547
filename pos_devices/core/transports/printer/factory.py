"""
Printer adapter factory.

The adapter strategy is chosen once, when the factory is built: the
spooler adapter on Windows, USB-direct everywhere else. Tests and
embedders can pass their own ``adapter_builder`` instead.
"""

import sys
from typing import Callable, Optional

from ...devices.types import TerminalDevice
from ..base_transport import WritableAdapter
from .spooler_adapter import SpoolerPrinterAdapter
from .usb_adapter import UsbPrinterAdapter

AdapterBuilder = Callable[[TerminalDevice], WritableAdapter]


class PrinterAdapterFactory:
    """Creates printer adapters with one fixed strategy."""

    def __init__(self, adapter_builder: Optional[AdapterBuilder] = None, platform: str = sys.platform):
        if adapter_builder is None:
            adapter_builder = SpoolerPrinterAdapter if platform == "win32" else UsbPrinterAdapter
        self._builder = adapter_builder

    @property
    def builder(self) -> AdapterBuilder:
        return self._builder

    def create(self, device: TerminalDevice) -> WritableAdapter:
        return self._builder(device)

    __call__ = create


__all__ = ["AdapterBuilder", "PrinterAdapterFactory"]
