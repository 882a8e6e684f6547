"""
Device discovery, configuration and reconciliation.

The reconciler owns the live device map; the config store owns persisted
per-model settings; the event bus carries connect/disconnect/data/error
between them and the capability managers.
"""

from .types import (
    BAUD_NOT_SUPPORTED,
    Capability,
    DeviceConfig,
    DeviceType,
    SUPPORTED_BAUD_RATES,
    TerminalDevice,
    default_config_for,
    is_valid_baudrate,
    make_device_id,
    to_hex_id,
)

from .events import (
    DeviceEventBus,
    Subscription,
)

from .storage import (
    JsonFileStore,
    KeyValueStore,
    MemoryStore,
)

from .config_store import DeviceConfigStore

from .detector import (
    DeviceDetector,
    PySerialPortBackend,
    PyUsbBackend,
    SerialPortInfo,
    SpoolerPrinterInfo,
    UsbDeviceInfo,
    merge_saved_config,
)

from .usb_hotplug import UsbHotplugMonitor

from .reconciler import DeviceReconciler


__all__ = [
    # Types
    'BAUD_NOT_SUPPORTED',
    'Capability',
    'DeviceConfig',
    'DeviceType',
    'SUPPORTED_BAUD_RATES',
    'TerminalDevice',
    'default_config_for',
    'is_valid_baudrate',
    'make_device_id',
    'to_hex_id',
    # Events
    'DeviceEventBus',
    'Subscription',
    # Storage
    'JsonFileStore',
    'KeyValueStore',
    'MemoryStore',
    'DeviceConfigStore',
    # Detection
    'DeviceDetector',
    'PySerialPortBackend',
    'PyUsbBackend',
    'SerialPortInfo',
    'SpoolerPrinterInfo',
    'UsbDeviceInfo',
    'merge_saved_config',
    'UsbHotplugMonitor',
    # Reconciliation
    'DeviceReconciler',
]
