"""Exception types raised by the device orchestration core."""

from __future__ import annotations


class DeviceError(Exception):
    """Base class for device orchestration errors."""


class DeviceNotFoundError(DeviceError, LookupError):
    """Raised when an operation names a device id that is not mapped."""

    def __init__(self, device_id: str):
        super().__init__(f"Device {device_id} not found")
        self.device_id = device_id


class DeviceTypeMismatchError(DeviceError, ValueError):
    """Raised when a device is not configured for the requested capability."""

    def __init__(self, device_id: str, expected: str, actual: str | None = None):
        message = f"Device {device_id} is not a {expected}"
        if actual is not None:
            message = f"{message} (configured as {actual})"
        super().__init__(message)
        self.device_id = device_id
        self.expected = expected
        self.actual = actual


class NoDefaultDeviceError(DeviceError):
    """Raised when a default-device operation finds no default of that type."""

    def __init__(self, device_type: str):
        super().__init__(f"No default {device_type} found")
        self.device_type = device_type


class AdapterError(DeviceError):
    """Transport-level failure while talking to a device."""


class ReadTimeoutError(DeviceError, TimeoutError):
    """Raised when a one-shot read receives no data in time."""

    def __init__(self, what: str, timeout: float):
        super().__init__(f"{what} timeout after {timeout:g}s")
        self.timeout = timeout


__all__ = [
    "AdapterError",
    "DeviceError",
    "DeviceNotFoundError",
    "DeviceTypeMismatchError",
    "NoDefaultDeviceError",
    "ReadTimeoutError",
]
