"""Component-prefixed loggers for the pos_devices package.

Every record is prefixed with the component that produced it, and with the
device id when the logger is bound to one:

    [SerialTransport] Opened /dev/ttyACM0 at 9600 baud
    [ScannerManager device_0x26f1_0x5650] Auto-started

Loggers live under the ``pos_devices`` namespace so hosts can tune the whole
stack with a single ``logging.getLogger("pos_devices")``.
"""

from __future__ import annotations

import logging
from typing import Optional, Union

LOGGER_NAMESPACE = "pos_devices"
DEFAULT_COMPONENT = "Core"


def _qualified_name(name: Optional[str]) -> str:
    if not name:
        return LOGGER_NAMESPACE
    if name == LOGGER_NAMESPACE or name.startswith(LOGGER_NAMESPACE + "."):
        return name
    return f"{LOGGER_NAMESPACE}.{name}"


def _component_of(qualified: str) -> str:
    suffix = qualified[len(LOGGER_NAMESPACE):].lstrip(".")
    return suffix or DEFAULT_COMPONENT


class StructuredLogger:
    """Wraps a ``logging.Logger`` and prefixes messages with ``[component]``."""

    def __init__(
        self,
        logger: logging.Logger,
        component: Optional[str] = None,
        device_id: Optional[str] = None,
    ) -> None:
        self._logger = logger
        self._component = component or _component_of(logger.name) or DEFAULT_COMPONENT
        self._device_id = device_id

    def __getattr__(self, item):
        # isEnabledFor, setLevel, handlers, ...
        return getattr(self._logger, item)

    def __repr__(self) -> str:  # pragma: no cover - debugging helper
        return f"StructuredLogger({self._logger.name!r}, prefix={self.prefix!r})"

    @property
    def name(self) -> str:
        return self._logger.name

    @property
    def component(self) -> str:
        return self._component

    @property
    def device_id(self) -> Optional[str]:
        return self._device_id

    @property
    def prefix(self) -> str:
        if self._device_id:
            return f"[{self._component} {self._device_id}]"
        return f"[{self._component}]"

    def for_device(self, device_id: str) -> "StructuredLogger":
        """Same logger, with ``device_id`` added to every prefix."""
        return StructuredLogger(self._logger, self._component, device_id)

    def _format(self, message: object, args: tuple) -> str:
        text = str(message)
        if args:
            try:
                text = text % args
            except (TypeError, ValueError):
                # Bad %-args from a caller must not lose the record
                text = f"{text} | args={' '.join(str(arg) for arg in args)}"
        return f"{self.prefix} {text}"

    def log(self, level: int, message: object, *args, **kwargs) -> None:
        if self._logger.isEnabledFor(level):
            self._logger.log(level, self._format(message, args), **kwargs)

    def debug(self, message: object, *args, **kwargs) -> None:
        self.log(logging.DEBUG, message, *args, **kwargs)

    def info(self, message: object, *args, **kwargs) -> None:
        self.log(logging.INFO, message, *args, **kwargs)

    def warning(self, message: object, *args, **kwargs) -> None:
        self.log(logging.WARNING, message, *args, **kwargs)

    def error(self, message: object, *args, **kwargs) -> None:
        self.log(logging.ERROR, message, *args, **kwargs)

    def exception(self, message: object, *args, **kwargs) -> None:
        kwargs.setdefault("exc_info", True)
        self.log(logging.ERROR, message, *args, **kwargs)

    def critical(self, message: object, *args, **kwargs) -> None:
        self.log(logging.CRITICAL, message, *args, **kwargs)


LoggerLike = Union[StructuredLogger, logging.Logger, None]


def ensure_structured_logger(logger: LoggerLike, *, fallback_name: Optional[str] = None) -> StructuredLogger:
    """Wrap a plain logger, pass a structured one through, or create one."""
    if isinstance(logger, StructuredLogger):
        return logger
    if isinstance(logger, logging.Logger):
        return StructuredLogger(logger, component=logger.name)
    return get_module_logger(fallback_name)


def get_module_logger(name: Optional[str] = None) -> StructuredLogger:
    """Logger ``pos_devices.<name>`` with ``[name]`` as its prefix."""
    return StructuredLogger(logging.getLogger(_qualified_name(name)))


__all__ = [
    "LoggerLike",
    "StructuredLogger",
    "ensure_structured_logger",
    "get_module_logger",
]
