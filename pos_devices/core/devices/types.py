"""
Core type definitions for terminal peripherals.

A ``TerminalDevice`` is rebuilt on every detection scan by merging live
hardware data with the persisted ``DeviceConfig`` for its vendor/product
id pair. Identity is the vid:pid pair, not the serial number, so two
units of the same model share one id and one configuration.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, FrozenSet, Mapping, Union


class DeviceType(Enum):
    """Capability a device has been configured to serve."""
    PRINTER = "printer"
    SCANNER = "scanner"
    SCALE = "scale"
    UNASSIGNED = "unassigned"


class Capability(Enum):
    """Raw I/O direction offered by the transport."""
    READ = "read"
    WRITE = "write"


BAUD_NOT_SUPPORTED = "not-supported"

SUPPORTED_BAUD_RATES: FrozenSet[int] = frozenset({
    110, 300, 600, 1200, 2400, 4800, 9600, 14400,
    19200, 38400, 57600, 115200, 128000, 256000,
})

Baudrate = Union[int, str]

DEFAULT_SERIAL_BAUDRATE = 9600
DEVICE_KEY_PREFIX = "device_"


def is_valid_baudrate(value: Any) -> bool:
    """True for a standard rate or the ``not-supported`` sentinel."""
    if value == BAUD_NOT_SUPPORTED:
        return True
    # bool is an int subclass; True must not pass as 1 baud
    return isinstance(value, int) and not isinstance(value, bool) and value in SUPPORTED_BAUD_RATES


def to_hex_id(value: Union[int, str]) -> str:
    """Normalize a vendor/product id to ``0x``-prefixed lower-case hex.

    Strings are parsed as hex with or without the prefix, so ``"26F1"``,
    ``"0x26f1"`` and ``0x26F1`` all become ``"0x26f1"``.
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid USB id: {value!r}")
    if isinstance(value, int):
        number = value
    else:
        text = str(value).strip()
        if not text:
            raise ValueError("USB id must not be empty")
        number = int(text, 16)
    if number < 0:
        raise ValueError(f"Invalid USB id: {value!r}")
    return f"0x{number:x}"


def make_device_id(vid: Union[int, str], pid: Union[int, str]) -> str:
    """Deterministic device id and config-store key for a vid/pid pair."""
    return f"{DEVICE_KEY_PREFIX}{to_hex_id(vid)}_{to_hex_id(pid)}"


@dataclass
class DeviceConfig:
    """Persisted per-model configuration, independent of live detection."""
    device_type: DeviceType = DeviceType.UNASSIGNED
    brand: str = ""
    model: str = ""
    baudrate: Baudrate = DEFAULT_SERIAL_BAUDRATE
    set_to_default: bool = False

    def copy(self, **changes: Any) -> "DeviceConfig":
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        """JSON form, camelCase keys as stored on disk."""
        return {
            "deviceType": self.device_type.value,
            "brand": self.brand,
            "model": self.model,
            "baudrate": self.baudrate,
            "setToDefault": self.set_to_default,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "DeviceConfig":
        return cls(
            device_type=DeviceType(data.get("deviceType", DeviceType.UNASSIGNED.value)),
            brand=str(data.get("brand", "")),
            model=str(data.get("model", "")),
            baudrate=data.get("baudrate", DEFAULT_SERIAL_BAUDRATE),
            set_to_default=bool(data.get("setToDefault", False)),
        )


def default_config_for(capabilities: FrozenSet[Capability]) -> DeviceConfig:
    """Config applied to a detected device that has no saved entry."""
    return DeviceConfig(
        device_type=DeviceType.PRINTER if Capability.WRITE in capabilities else DeviceType.UNASSIGNED,
        baudrate=DEFAULT_SERIAL_BAUDRATE if Capability.READ in capabilities else BAUD_NOT_SUPPORTED,
        set_to_default=False,
    )


@dataclass
class TerminalDevice:
    """A detected peripheral merged with its current configuration."""
    id: str
    vid: str
    pid: str
    path: str
    capabilities: FrozenSet[Capability]
    meta: DeviceConfig = field(default_factory=DeviceConfig)
    name: str = ""
    manufacturer: str = ""
    serial_number: str = ""

    @property
    def device_type(self) -> DeviceType:
        return self.meta.device_type

    @property
    def is_default(self) -> bool:
        return self.meta.set_to_default

    @property
    def can_read(self) -> bool:
        return Capability.READ in self.capabilities

    @property
    def can_write(self) -> bool:
        return Capability.WRITE in self.capabilities

    def matches(self, vid: str, pid: str) -> bool:
        return self.vid == vid and self.pid == pid

    def reconciliation_key(self) -> tuple:
        """Fields whose change turns a rescan into a "reconfigured" event."""
        return (self.meta.device_type, self.meta.set_to_default, self.meta.baudrate)


__all__ = [
    "BAUD_NOT_SUPPORTED",
    "Baudrate",
    "Capability",
    "DEFAULT_SERIAL_BAUDRATE",
    "DEVICE_KEY_PREFIX",
    "DeviceConfig",
    "DeviceType",
    "SUPPORTED_BAUD_RATES",
    "TerminalDevice",
    "default_config_for",
    "is_valid_baudrate",
    "make_device_id",
    "to_hex_id",
]
