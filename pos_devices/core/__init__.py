"""Core of the device orchestration layer: devices, transports, retry and settings."""

from .errors import (
    AdapterError,
    DeviceError,
    DeviceNotFoundError,
    DeviceTypeMismatchError,
    NoDefaultDeviceError,
    ReadTimeoutError,
)
from .logging_config import configure_host_logging, configure_logging
from .logging_utils import get_module_logger
from .settings import DeviceSettings, load_settings, load_settings_async

__all__ = [
    'AdapterError',
    'DeviceError',
    'DeviceNotFoundError',
    'DeviceSettings',
    'DeviceTypeMismatchError',
    'NoDefaultDeviceError',
    'ReadTimeoutError',
    'configure_host_logging',
    'configure_logging',
    'get_module_logger',
    'load_settings',
    'load_settings_async',
]
