"""Process-wide logging setup for hosts embedding pos_devices."""

from __future__ import annotations

import contextlib
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Iterable, List, Optional, Union

from .paths import MASTER_LOG_FILE, ensure_directories
from .settings import DeviceSettings

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"
LOG_MAX_BYTES = 500 * 1024
LOG_BACKUP_COUNT = 2

# Third-party loggers that flood DEBUG during USB enumeration and printing
NOISY_LOGGERS = ("usb", "escpos", "PIL")

_configured = False


def _level_number(level: Union[int, str]) -> int:
    if isinstance(level, int):
        return level
    number = logging.getLevelName(level.upper())
    if not isinstance(number, int):
        raise ValueError(f"Unknown log level '{level}'")
    return number


def _quiet(names: Iterable[str]) -> None:
    for name in names:
        logging.getLogger(name).setLevel(logging.ERROR)


def _build_handlers(
    console: bool,
    log_file: Optional[Path],
    max_bytes: int,
    backup_count: int,
) -> List[logging.Handler]:
    handlers: List[logging.Handler] = []
    if console:
        handlers.append(logging.StreamHandler(sys.stdout))
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(RotatingFileHandler(
            log_file,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        ))
    return handlers


def configure_logging(
    level: Union[int, str] = logging.INFO,
    *,
    force: bool = False,
    console: bool = True,
    log_file: Optional[Union[str, Path]] = None,
    max_bytes: int = LOG_MAX_BYTES,
    backup_count: int = LOG_BACKUP_COUNT,
    suppressed_loggers: Iterable[str] = NOISY_LOGGERS,
) -> None:
    """Install console and/or rotating-file handlers on the root logger.

    Only the first call (or a call with ``force=True``) replaces handlers;
    later calls just adjust the level. Unknown level names raise ValueError
    before anything is touched.
    """
    global _configured
    numeric_level = _level_number(level)
    root = logging.getLogger()

    if not _configured or force:
        for handler in list(root.handlers):
            root.removeHandler(handler)
            with contextlib.suppress(Exception):
                handler.close()

        formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT)
        path = Path(log_file) if log_file else None
        for handler in _build_handlers(console, path, max_bytes, backup_count):
            handler.setFormatter(formatter)
            root.addHandler(handler)
        if not root.handlers:
            logging.basicConfig(level=numeric_level, format=LOG_FORMAT, datefmt=LOG_DATEFMT)
        _configured = True

    root.setLevel(numeric_level)
    _quiet(suppressed_loggers)


def configure_host_logging(settings: DeviceSettings, *, console: bool = True) -> Path:
    """Apply ``settings.log_level`` and ``settings.log_file``; returns the log path.

    Without a configured file, logs go to MASTER_LOG_FILE in the state directory.
    """
    log_file = settings.log_file
    if log_file is None:
        ensure_directories()
        log_file = MASTER_LOG_FILE
    configure_logging(settings.log_level, force=True, console=console, log_file=log_file)
    return Path(log_file)


__all__ = [
    "LOG_DATEFMT",
    "LOG_FORMAT",
    "NOISY_LOGGERS",
    "configure_host_logging",
    "configure_logging",
]
