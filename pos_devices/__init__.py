"""
Device session orchestration for point-of-sale peripherals.

Receipt printers, barcode scanners and weight scales attached over USB or
serial are tracked by a reconciler and served through per-capability
managers that survive disconnects, re-enumeration and config changes.
"""

from .core.devices import (
    DeviceConfig,
    DeviceConfigStore,
    DeviceEventBus,
    DeviceReconciler,
    DeviceType,
    TerminalDevice,
)
from .core.errors import (
    DeviceError,
    DeviceNotFoundError,
    DeviceTypeMismatchError,
    NoDefaultDeviceError,
    ReadTimeoutError,
)
from .core.settings import DeviceSettings, load_settings
from .managers import (
    DeviceManagers,
    PrinterManager,
    ScaleManager,
    ScannerManager,
    create_device_managers,
)

__version__ = "1.0.0"

__all__ = [
    'DeviceConfig',
    'DeviceConfigStore',
    'DeviceError',
    'DeviceEventBus',
    'DeviceManagers',
    'DeviceNotFoundError',
    'DeviceReconciler',
    'DeviceSettings',
    'DeviceType',
    'DeviceTypeMismatchError',
    'NoDefaultDeviceError',
    'PrinterManager',
    'ReadTimeoutError',
    'ScaleManager',
    'ScannerManager',
    'TerminalDevice',
    'create_device_managers',
    'load_settings',
    '__version__',
]
