"""
Device configuration store.

Configs live in a ``KeyValueStore`` under ``device_<vid>_<pid>`` keys.
Every write that leaves a config flagged as default first clears the
default flag on every other config of the same device type, so at most
one default exists per type.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional, Union

from ..logging_utils import get_module_logger
from .storage import KeyValueStore, MemoryStore
from .types import (
    DEVICE_KEY_PREFIX,
    DeviceConfig,
    DeviceType,
    is_valid_baudrate,
    make_device_id,
)

logger = get_module_logger("DeviceConfigStore")

# Partial-update field names; camelCase aliases match the on-disk form.
_FIELD_ALIASES = {
    "device_type": "device_type",
    "deviceType": "device_type",
    "brand": "brand",
    "model": "model",
    "baudrate": "baudrate",
    "set_to_default": "set_to_default",
    "setToDefault": "set_to_default",
}


def _validate_field(name: str, value: Any) -> Optional[Any]:
    """Return the normalized value, or ``None`` when invalid."""
    if name == "device_type":
        if isinstance(value, DeviceType):
            return value
        if isinstance(value, str):
            try:
                return DeviceType(value)
            except ValueError:
                return None
        return None
    if name in ("brand", "model"):
        if isinstance(value, str) and value.strip():
            return value
        return None
    if name == "baudrate":
        return value if is_valid_baudrate(value) else None
    if name == "set_to_default":
        return value if isinstance(value, bool) else None
    return None


def _normalize_partial(partial: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
    changes: Dict[str, Any] = {}
    for raw_name, value in partial.items():
        name = _FIELD_ALIASES.get(raw_name)
        if name is None:
            return None
        normalized = _validate_field(name, value)
        if normalized is None:
            return None
        changes[name] = normalized
    return changes


class DeviceConfigStore:
    """CRUD over persisted ``DeviceConfig`` records keyed by vid/pid."""

    def __init__(self, store: Optional[KeyValueStore] = None) -> None:
        self._store = store if store is not None else MemoryStore()

    @property
    def backing_store(self) -> KeyValueStore:
        return self._store

    @staticmethod
    def key_for(vid: Union[int, str], pid: Union[int, str]) -> str:
        return make_device_id(vid, pid)

    @staticmethod
    def _try_key(vid: Union[int, str], pid: Union[int, str]) -> Optional[str]:
        try:
            return make_device_id(vid, pid)
        except (TypeError, ValueError):
            return None

    # =========================================================================
    # Reads
    # =========================================================================

    def get(self, vid: Union[int, str], pid: Union[int, str]) -> Optional[DeviceConfig]:
        key = self._try_key(vid, pid)
        if key is None:
            return None
        return self._load(key)

    def _load(self, key: str) -> Optional[DeviceConfig]:
        raw = self._store.get(key)
        if raw is None:
            return None
        try:
            return DeviceConfig.from_dict(raw)
        except (AttributeError, TypeError, ValueError) as exc:
            logger.warning("Ignoring malformed config under %s: %s", key, exc)
            return None

    def has(self, vid: Union[int, str], pid: Union[int, str]) -> bool:
        key = self._try_key(vid, pid)
        return key is not None and self._store.get(key) is not None

    def count(self) -> int:
        return sum(1 for key in self._store.items() if key.startswith(DEVICE_KEY_PREFIX))

    def all(self) -> Dict[str, DeviceConfig]:
        """All configs keyed ``"<vid>:<pid>"``; non-device keys are skipped."""
        result: Dict[str, DeviceConfig] = {}
        for key in self._store.items():
            parsed = self._parse_key(key)
            if parsed is None:
                continue
            config = self._load(key)
            if config is not None:
                result[f"{parsed[0]}:{parsed[1]}"] = config
        return result

    @staticmethod
    def _parse_key(key: str) -> Optional[tuple[str, str]]:
        if not key.startswith(DEVICE_KEY_PREFIX):
            return None
        parts = key[len(DEVICE_KEY_PREFIX):].split("_")
        if len(parts) != 2 or not all(parts):
            return None
        return parts[0], parts[1]

    def find_default(self, device_type: DeviceType) -> Optional[tuple[str, str]]:
        for pair, config in self.all().items():
            if config.device_type is device_type and config.set_to_default:
                vid, pid = pair.split(":")
                return vid, pid
        return None

    # =========================================================================
    # Writes
    # =========================================================================

    def save(self, vid: Union[int, str], pid: Union[int, str], config: DeviceConfig) -> None:
        """Create or overwrite the config for ``vid``/``pid``."""
        key = self.key_for(vid, pid)
        if config.set_to_default:
            self._clear_other_defaults(key, config.device_type)
        self._store.set(key, config.to_dict())
        logger.debug("Saved %s: %s", key, config)

    def update(
        self,
        vid: Union[int, str],
        pid: Union[int, str],
        partial: Mapping[str, Any],
    ) -> Optional[DeviceConfig]:
        """Merge validated fields into an existing config.

        Returns ``None`` (never raises) for an empty id, an empty or invalid
        partial, or when no config exists yet.
        """
        if not vid or not pid or not partial:
            return None
        changes = _normalize_partial(partial)
        if changes is None:
            logger.debug("Rejected config update for %s:%s: %r", vid, pid, dict(partial))
            return None
        key = self._try_key(vid, pid)
        if key is None:
            return None
        existing = self._load(key)
        if existing is None:
            return None
        updated = existing.copy(**changes)
        if updated.set_to_default:
            self._clear_other_defaults(key, updated.device_type)
        self._store.set(key, updated.to_dict())
        return updated

    def delete(self, vid: Union[int, str], pid: Union[int, str]) -> bool:
        key = self._try_key(vid, pid)
        if key is None:
            return False
        return self._store.delete(key)

    def clear_all(self) -> bool:
        removed = 0
        for key in list(self._store.items()):
            if key.startswith(DEVICE_KEY_PREFIX) and self._store.delete(key):
                removed += 1
        return removed > 0

    def set_as_default(
        self,
        vid: Union[int, str],
        pid: Union[int, str],
        device_type: DeviceType,
    ) -> bool:
        key = self._try_key(vid, pid)
        if key is None or self._store.get(key) is None:
            return False
        self._clear_other_defaults(key, device_type)
        return self.update(vid, pid, {"set_to_default": True}) is not None

    def unset_as_default(self, vid: Union[int, str], pid: Union[int, str]) -> bool:
        return self.update(vid, pid, {"set_to_default": False}) is not None

    def _clear_other_defaults(self, key: str, device_type: DeviceType) -> None:
        for pair, config in self.all().items():
            vid, pid = pair.split(":")
            other_key = make_device_id(vid, pid)
            if other_key == key:
                continue
            if config.device_type is device_type and config.set_to_default:
                logger.info("Clearing previous default %s for %s", other_key, device_type.value)
                self._store.set(other_key, config.copy(set_to_default=False).to_dict())


__all__ = ["DeviceConfigStore"]
