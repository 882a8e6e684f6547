"""
Device Events - connect/disconnect/data/error fan-out.

The reconciler is the only publisher of connect and disconnect; adapters
publish data and errors keyed by device id. Capability managers subscribe.
Every subscriber is isolated: one failing callback is logged and the
remaining subscribers still run.
"""

from __future__ import annotations

import inspect
from typing import Any, Awaitable, Callable, Union

from ..logging_utils import get_module_logger
from .types import TerminalDevice

logger = get_module_logger("DeviceEvents")

MaybeAwaitable = Union[None, Awaitable[None]]
DeviceHandler = Callable[[TerminalDevice], MaybeAwaitable]
DataHandler = Callable[[str], MaybeAwaitable]
ErrorHandler = Callable[[str, BaseException], MaybeAwaitable]


class Subscription:
    """Handle returned by every ``on_*`` registration.

    ``unsubscribe()`` is idempotent and may be called from inside the
    callback it removes.
    """

    __slots__ = ("_remove", "_active")

    def __init__(self, remove: Callable[[], None]) -> None:
        self._remove = remove
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        if not self._active:
            return
        self._active = False
        self._remove()

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.unsubscribe()


def _remover(handlers: list, handler: Callable) -> Callable[[], None]:
    def remove() -> None:
        try:
            handlers.remove(handler)
        except ValueError:
            pass
    return remove


async def _call(handler: Callable, *args: Any) -> None:
    result = handler(*args)
    if inspect.isawaitable(result):
        await result


async def dispatch_isolated(handlers: list, channel: str, *args: Any) -> None:
    """Call every handler in order; a failing handler is logged and skipped."""
    # Snapshot: handlers may unsubscribe themselves while running.
    for handler in list(handlers):
        try:
            await _call(handler, *args)
        except Exception:
            logger.exception("Error in %s handler %r", channel, handler)


class DeviceEventBus:
    """Typed pub/sub hub shared by the reconciler, adapters and managers."""

    def __init__(self) -> None:
        self._connect_handlers: list[DeviceHandler] = []
        self._disconnect_handlers: list[DeviceHandler] = []
        self._data_handlers: dict[str, list[DataHandler]] = {}
        self._error_handlers: list[ErrorHandler] = []

    # =========================================================================
    # Registration
    # =========================================================================

    def on_device_connect(self, handler: DeviceHandler) -> Subscription:
        self._connect_handlers.append(handler)
        return Subscription(_remover(self._connect_handlers, handler))

    def on_device_disconnect(self, handler: DeviceHandler) -> Subscription:
        self._disconnect_handlers.append(handler)
        return Subscription(_remover(self._disconnect_handlers, handler))

    def on_device_data(self, device_id: str, handler: DataHandler) -> Subscription:
        handlers = self._data_handlers.setdefault(device_id, [])
        handlers.append(handler)

        def remove() -> None:
            current = self._data_handlers.get(device_id)
            if current is None:
                return
            try:
                current.remove(handler)
            except ValueError:
                return
            if not current:
                del self._data_handlers[device_id]

        return Subscription(remove)

    def on_device_error(self, handler: ErrorHandler) -> Subscription:
        self._error_handlers.append(handler)
        return Subscription(_remover(self._error_handlers, handler))

    # =========================================================================
    # Dispatch
    # =========================================================================

    async def emit_device_connect(self, device: TerminalDevice) -> None:
        logger.debug("connect -> %s (%s)", device.id, device.device_type.value)
        await dispatch_isolated(self._connect_handlers, "connect", device)

    async def emit_device_disconnect(self, device: TerminalDevice) -> None:
        """Dispatch disconnect, then drop the device's data subscribers."""
        logger.debug("disconnect -> %s", device.id)
        try:
            await dispatch_isolated(self._disconnect_handlers, "disconnect", device)
        finally:
            self.clear_device_data_handlers(device.id)

    async def emit_device_data(self, device_id: str, data: str) -> None:
        handlers = self._data_handlers.get(device_id)
        if not handlers:
            return
        await dispatch_isolated(handlers, f"data[{device_id}]", data)

    async def emit_device_error(self, device_id: str, error: BaseException) -> None:
        logger.warning("Device %s reported error: %s", device_id, error)
        await dispatch_isolated(self._error_handlers, "error", device_id, error)

    # =========================================================================
    # Housekeeping
    # =========================================================================

    def clear_device_data_handlers(self, device_id: str) -> None:
        self._data_handlers.pop(device_id, None)

    def data_handler_count(self, device_id: str) -> int:
        return len(self._data_handlers.get(device_id, ()))

    def clear(self) -> None:
        """Remove every subscriber on every channel."""
        self._connect_handlers.clear()
        self._disconnect_handlers.clear()
        self._data_handlers.clear()
        self._error_handlers.clear()


__all__ = [
    "DataHandler",
    "DeviceEventBus",
    "DeviceHandler",
    "ErrorHandler",
    "Subscription",
    "dispatch_isolated",
]
