"""Per-capability device managers (scanner, scale, printer)."""

from .capability_manager import ReadCapabilityManager
from .device_managers import DeviceManagers, create_device_managers
from .printer_manager import PrinterManager
from .scale_manager import ScaleManager
from .scanner_manager import ScannerManager

__all__ = [
    'DeviceManagers',
    'PrinterManager',
    'ReadCapabilityManager',
    'ScaleManager',
    'ScannerManager',
    'create_device_managers',
]
