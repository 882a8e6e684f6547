"""Centralized path constants for pos_devices state."""

from __future__ import annotations

import os
from pathlib import Path

# User-specific state (allows running from read-only install locations)
_USER_STATE_ENV = os.environ.get("POS_DEVICES_STATE_DIR")
USER_STATE_DIR = Path(_USER_STATE_ENV).expanduser() if _USER_STATE_ENV else (Path.home() / ".pos_devices")

DEVICE_CONFIG_FILE = USER_STATE_DIR / "device-config.json"
SETTINGS_FILE = USER_STATE_DIR / "settings.txt"

LOGS_DIR = USER_STATE_DIR / "logs"
MASTER_LOG_FILE = LOGS_DIR / "pos_devices.log"


def ensure_directories() -> None:
    """Create necessary directories if they don't exist."""

    USER_STATE_DIR.mkdir(parents=True, exist_ok=True)
    LOGS_DIR.mkdir(parents=True, exist_ok=True)


__all__ = [
    'USER_STATE_DIR',
    'DEVICE_CONFIG_FILE',
    'SETTINGS_FILE',
    'LOGS_DIR',
    'MASTER_LOG_FILE',
    'ensure_directories',
]
