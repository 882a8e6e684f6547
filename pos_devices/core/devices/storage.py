"""
Key-value persistence for device configuration.

``JsonFileStore`` keeps the whole store as one JSON object on disk and
rewrites it atomically on every mutation; ``MemoryStore`` is the same
interface without a file.
"""

from __future__ import annotations

import copy
import json
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional, Protocol, runtime_checkable

from ..logging_utils import get_module_logger

logger = get_module_logger("DeviceStorage")


@runtime_checkable
class KeyValueStore(Protocol):
    """Minimal store contract used by ``DeviceConfigStore``."""

    def get(self, key: str) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...

    def delete(self, key: str) -> bool: ...

    def items(self) -> Dict[str, Any]: ...

    def clear(self) -> None: ...


class MemoryStore:
    """In-process store; values are deep-copied in and out."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None) -> None:
        self._data: Dict[str, Any] = copy.deepcopy(initial) if initial else {}

    def get(self, key: str) -> Any:
        return copy.deepcopy(self._data.get(key))

    def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    def delete(self, key: str) -> bool:
        if key not in self._data:
            return False
        del self._data[key]
        return True

    def items(self) -> Dict[str, Any]:
        return copy.deepcopy(self._data)

    def clear(self) -> None:
        self._data.clear()

    def __len__(self) -> int:
        return len(self._data)


class JsonFileStore(MemoryStore):
    """JSON-object file store with lazy load and write-through."""

    def __init__(self, path: Path) -> None:
        super().__init__()
        self._path = Path(path)
        self._loaded = False

    @property
    def path(self) -> Path:
        return self._path

    def _ensure_loaded(self) -> None:
        if self._loaded:
            return
        self._loaded = True
        if not self._path.exists():
            return
        try:
            with self._path.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Could not read %s, starting empty: %s", self._path, exc)
            return
        if not isinstance(data, dict):
            logger.warning("Ignoring %s: top-level JSON value is not an object", self._path)
            return
        self._data = data

    def _flush(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path: Optional[Path] = None
        try:
            with tempfile.NamedTemporaryFile(
                "w",
                dir=str(self._path.parent),
                delete=False,
                encoding="utf-8",
            ) as tmp:
                tmp_path = Path(tmp.name)
                json.dump(self._data, tmp, indent=2, sort_keys=True)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp_path, self._path)
            tmp_path = None
        finally:
            if tmp_path is not None:
                try:
                    tmp_path.unlink()
                except FileNotFoundError:
                    pass

    def get(self, key: str) -> Any:
        self._ensure_loaded()
        return super().get(key)

    def set(self, key: str, value: Any) -> None:
        self._ensure_loaded()
        super().set(key, value)
        self._flush()

    def delete(self, key: str) -> bool:
        self._ensure_loaded()
        removed = super().delete(key)
        if removed:
            self._flush()
        return removed

    def items(self) -> Dict[str, Any]:
        self._ensure_loaded()
        return super().items()

    def clear(self) -> None:
        self._ensure_loaded()
        super().clear()
        self._flush()

    def __len__(self) -> int:
        self._ensure_loaded()
        return super().__len__()


__all__ = ["JsonFileStore", "KeyValueStore", "MemoryStore"]
