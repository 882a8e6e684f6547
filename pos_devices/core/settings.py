"""
Runtime settings for the device core.

Settings come from a ``key = value`` text file (``#`` comments, optional
quotes), the same format the rest of the tooling uses. Unknown keys are
ignored; a malformed value falls back to its default with a warning.

Recognised keys::

    scanner_retry_attempts, scanner_retry_base_delay,
    scanner_retry_max_delay, scanner_retry_multiplier
    scale_retry_attempts, scale_retry_base_delay,
    scale_retry_max_delay, scale_retry_multiplier
    keep_alive_interval, hotplug_enabled, hotplug_interval,
    refresh_coalesce_delay, scan_timeout, weight_timeout,
    log_level, log_file, storage_path
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, Mapping, Optional

import aiofiles

from .connection.keep_alive import DEFAULT_KEEP_ALIVE_INTERVAL
from .connection.retry_policy import DEFAULT_RETRY_OPTIONS, RetryOptions
from .logging_utils import get_module_logger
from .paths import DEVICE_CONFIG_FILE, SETTINGS_FILE

logger = get_module_logger("Settings")

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class DeviceSettings:
    scanner_retry: RetryOptions = DEFAULT_RETRY_OPTIONS
    scale_retry: RetryOptions = DEFAULT_RETRY_OPTIONS
    keep_alive_interval: float = DEFAULT_KEEP_ALIVE_INTERVAL
    hotplug_enabled: bool = True
    hotplug_interval: float = 1.0
    refresh_coalesce_delay: float = 0.05
    scan_timeout: float = 10.0
    weight_timeout: float = 5.0
    log_level: str = "INFO"
    log_file: Optional[Path] = None
    storage_path: Path = field(default=DEVICE_CONFIG_FILE)


def parse_settings_lines(lines: Iterable[str]) -> Dict[str, str]:
    values: Dict[str, str] = {}
    for raw_line in lines:
        line = raw_line.strip()
        if not line or line.startswith('#') or '=' not in line:
            continue
        key, value = line.split('=', 1)
        key = key.strip()
        value = value.strip()
        if '#' in value:
            value = value.split('#')[0].strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
            value = value[1:-1]
        values[key] = value
    return values


def _get_float(values: Mapping[str, str], key: str, default: float) -> float:
    raw = values.get(key)
    if raw is None or raw == "":
        return default
    try:
        result = float(raw)
    except ValueError:
        logger.warning("Invalid number for %s: %r (using %s)", key, raw, default)
        return default
    if result < 0:
        logger.warning("Negative value for %s: %r (using %s)", key, raw, default)
        return default
    return result


def _get_int(values: Mapping[str, str], key: str, default: int) -> int:
    raw = values.get(key)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Invalid integer for %s: %r (using %s)", key, raw, default)
        return default


def _get_bool(values: Mapping[str, str], key: str, default: bool) -> bool:
    raw = values.get(key)
    if raw is None or raw == "":
        return default
    lowered = raw.lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    logger.warning("Invalid boolean for %s: %r (using %s)", key, raw, default)
    return default


def _retry_options(values: Mapping[str, str], prefix: str) -> RetryOptions:
    base = DEFAULT_RETRY_OPTIONS
    try:
        return RetryOptions(
            max_attempts=_get_int(values, f"{prefix}_retry_attempts", base.max_attempts),
            base_delay=_get_float(values, f"{prefix}_retry_base_delay", base.base_delay),
            max_delay=_get_float(values, f"{prefix}_retry_max_delay", base.max_delay),
            multiplier=_get_float(values, f"{prefix}_retry_multiplier", base.multiplier),
        )
    except ValueError as exc:
        logger.warning("Invalid %s retry settings (%s); using defaults", prefix, exc)
        return base


def settings_from_mapping(values: Mapping[str, str]) -> DeviceSettings:
    defaults = DeviceSettings()
    keep_alive = _get_float(values, "keep_alive_interval", defaults.keep_alive_interval)
    if keep_alive <= 0:
        logger.warning("keep_alive_interval must be positive (using %s)", defaults.keep_alive_interval)
        keep_alive = defaults.keep_alive_interval
    log_file = values.get("log_file") or None
    storage_path = values.get("storage_path") or None
    return DeviceSettings(
        scanner_retry=_retry_options(values, "scanner"),
        scale_retry=_retry_options(values, "scale"),
        keep_alive_interval=keep_alive,
        hotplug_enabled=_get_bool(values, "hotplug_enabled", defaults.hotplug_enabled),
        hotplug_interval=_get_float(values, "hotplug_interval", defaults.hotplug_interval),
        refresh_coalesce_delay=_get_float(values, "refresh_coalesce_delay", defaults.refresh_coalesce_delay),
        scan_timeout=_get_float(values, "scan_timeout", defaults.scan_timeout),
        weight_timeout=_get_float(values, "weight_timeout", defaults.weight_timeout),
        log_level=(values.get("log_level") or defaults.log_level).upper(),
        log_file=Path(log_file).expanduser() if log_file else None,
        storage_path=Path(storage_path).expanduser() if storage_path else defaults.storage_path,
    )


def load_settings(path: Path = SETTINGS_FILE) -> DeviceSettings:
    """Read settings synchronously; a missing file yields the defaults."""
    if not path.exists():
        return DeviceSettings()
    try:
        with open(path, 'r', encoding='utf-8') as fh:
            values = parse_settings_lines(fh)
    except OSError as e:
        logger.error("Failed to read settings %s: %s", path, e)
        return DeviceSettings()
    return settings_from_mapping(values)


async def load_settings_async(path: Path = SETTINGS_FILE) -> DeviceSettings:
    if not await asyncio.to_thread(path.exists):
        return DeviceSettings()
    try:
        async with aiofiles.open(path, 'r', encoding='utf-8') as f:
            lines = await f.readlines()
    except OSError as e:
        logger.error("Failed to read settings %s: %s", path, e)
        return DeviceSettings()
    return settings_from_mapping(parse_settings_lines(lines))


__all__ = [
    "DeviceSettings",
    "load_settings",
    "load_settings_async",
    "parse_settings_lines",
    "settings_from_mapping",
]
