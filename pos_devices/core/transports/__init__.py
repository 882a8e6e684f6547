"""Transport adapters for terminal peripherals."""

from .base_transport import DeviceAdapter, ReadableAdapter, WritableAdapter
from .serial_transport import (
    DelimitedLineParser,
    RawLineParser,
    ScaleAdapter,
    ScannerAdapter,
    SerialReaderAdapter,
)

__all__ = [
    'DelimitedLineParser',
    'DeviceAdapter',
    'RawLineParser',
    'ReadableAdapter',
    'ScaleAdapter',
    'ScannerAdapter',
    'SerialReaderAdapter',
    'WritableAdapter',
]
