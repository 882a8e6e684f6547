"""
Base Transport

Abstract adapter contract shared by serial readers (scanner, scale) and
printers. Adapters are created lazily by the capability managers and
destroyed on disconnect or adapter error; they hold no persisted state.
"""

from abc import ABC, abstractmethod
from typing import Awaitable, Callable, List, Union

from ..devices.events import dispatch_isolated
from ..devices.types import TerminalDevice

ReadCallback = Callable[[str], Union[None, Awaitable[None]]]
ErrorCallback = Callable[[BaseException], Union[None, Awaitable[None]]]


class DeviceAdapter(ABC):
    """
    Abstract base class for device adapters.

    Subclasses implement ``open``/``close``; errors detected after a
    successful open are reported through ``on_error`` callbacks rather
    than raised, since nobody is awaiting the background I/O.
    """

    def __init__(self, device: TerminalDevice):
        self.device = device
        self._error_callbacks: List[ErrorCallback] = []

    @property
    @abstractmethod
    def is_open(self) -> bool:
        ...

    @abstractmethod
    async def open(self) -> None:
        """Acquire the underlying resource. Idempotent."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release the underlying resource. Idempotent."""
        ...

    def on_error(self, callback: ErrorCallback) -> None:
        self._error_callbacks.append(callback)

    async def _report_error(self, error: BaseException) -> None:
        await dispatch_isolated(self._error_callbacks, f"adapter-error[{self.device.id}]", error)

    async def __aenter__(self):
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False


class ReadableAdapter(DeviceAdapter):
    """Adapter that pushes decoded lines to registered read callbacks."""

    def __init__(self, device: TerminalDevice):
        super().__init__(device)
        self._read_callbacks: List[ReadCallback] = []

    def read(self, callback: ReadCallback) -> None:
        if not callable(callback):
            raise TypeError("Read callback must be callable")
        if callback not in self._read_callbacks:
            self._read_callbacks.append(callback)

    def remove_read_callback(self, callback: ReadCallback) -> None:
        if callback in self._read_callbacks:
            self._read_callbacks.remove(callback)

    def clear_read_callbacks(self) -> None:
        self._read_callbacks.clear()

    async def _dispatch_line(self, line: str) -> None:
        await dispatch_isolated(self._read_callbacks, f"read[{self.device.id}]", line)


class WritableAdapter(DeviceAdapter):
    """Adapter that accepts text or image print jobs."""

    @abstractmethod
    async def write(self, data: str, is_image: bool = False) -> None:
        """
        Send one job to the device.

        Args:
            data: Text to print, or for images a base64 payload / file path
            is_image: Whether ``data`` is an image
        """
        ...


__all__ = [
    "DeviceAdapter",
    "ErrorCallback",
    "ReadCallback",
    "ReadableAdapter",
    "WritableAdapter",
]
