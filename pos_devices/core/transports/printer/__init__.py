"""Printer transports: ESC/POS encoding plus spooler and USB-direct adapters."""

from .escpos_encoder import EscPosEncoder, ImageOptions
from .factory import PrinterAdapterFactory
from .spooler_adapter import SpoolerPrinterAdapter
from .usb_adapter import PyUsbPrinterIO, UsbPrinterAdapter

__all__ = [
    "EscPosEncoder",
    "ImageOptions",
    "PrinterAdapterFactory",
    "PyUsbPrinterIO",
    "SpoolerPrinterAdapter",
    "UsbPrinterAdapter",
]
