"""
USB Serial Transport

Read-side adapters for serial scanners and scales, wrapping pyserial with
an async interface. The port is opened through the exponential backoff
executor, a background task reads and parses incoming bytes, and a
keep-alive heartbeat writes ENQ periodically so a dead link surfaces as
an adapter error.
"""

import asyncio
from typing import Callable, List, Optional, Protocol

import serial

from ..asyncio_utils import cancel_task, create_logged_task
from ..connection import (
    DEFAULT_RETRY_OPTIONS,
    KeepAliveHeartbeat,
    RetryOptions,
    with_exponential_backoff,
)
from ..connection.keep_alive import DEFAULT_KEEP_ALIVE_INTERVAL
from ..devices.types import BAUD_NOT_SUPPORTED, DeviceType, TerminalDevice
from ..errors import AdapterError, DeviceTypeMismatchError
from ..logging_utils import get_module_logger
from .base_transport import ReadableAdapter

logger = get_module_logger("SerialTransport")

DEFAULT_READ_TIMEOUT = 0.1
DEFAULT_WRITE_TIMEOUT = 1.0
SCALE_DELIMITER = b"\r\n"


# =========================================================================
# Line parsers
# =========================================================================

class LineParser(Protocol):
    def feed(self, chunk: bytes) -> List[str]: ...

    def reset(self) -> None: ...


class RawLineParser:
    """Each received chunk is one value (barcode scanners)."""

    def __init__(self, encoding: str = "utf-8"):
        self.encoding = encoding

    def feed(self, chunk: bytes) -> List[str]:
        text = chunk.decode(self.encoding, errors="replace").strip()
        return [text] if text else []

    def reset(self) -> None:
        pass


class DelimitedLineParser:
    """Buffers bytes and splits on ``delimiter`` (scales send ``\\r\\n``)."""

    def __init__(
        self,
        delimiter: bytes = SCALE_DELIMITER,
        encoding: str = "utf-8",
        max_buffer: int = 4096,
    ):
        if not delimiter:
            raise ValueError("delimiter must not be empty")
        self.delimiter = delimiter
        self.encoding = encoding
        self.max_buffer = max_buffer
        self._buffer = bytearray()

    def feed(self, chunk: bytes) -> List[str]:
        self._buffer.extend(chunk)
        lines = []
        while True:
            index = self._buffer.find(self.delimiter)
            if index < 0:
                break
            raw = bytes(self._buffer[:index])
            del self._buffer[:index + len(self.delimiter)]
            text = raw.decode(self.encoding, errors="replace").strip()
            if text:
                lines.append(text)
        if len(self._buffer) > self.max_buffer:
            logger.warning("Dropping %d buffered bytes without delimiter", len(self._buffer))
            self._buffer.clear()
        return lines

    def reset(self) -> None:
        self._buffer.clear()


# =========================================================================
# Adapter
# =========================================================================

SerialFactory = Callable[..., serial.Serial]


class SerialReaderAdapter(ReadableAdapter):
    """
    Serial adapter for read-capable devices.

    Subclasses fix the device type and parser; see ``ScannerAdapter`` and
    ``ScaleAdapter``.
    """

    device_type: DeviceType = DeviceType.UNASSIGNED
    label = "Serial device"

    def __init__(
        self,
        device: TerminalDevice,
        parser: Optional[LineParser] = None,
        retry_options: Optional[RetryOptions] = None,
        keep_alive_interval: float = DEFAULT_KEEP_ALIVE_INTERVAL,
        read_timeout: float = DEFAULT_READ_TIMEOUT,
        write_timeout: float = DEFAULT_WRITE_TIMEOUT,
        serial_factory: SerialFactory = serial.Serial,
    ):
        if device.device_type is not self.device_type:
            raise DeviceTypeMismatchError(
                device.id, self.device_type.value, device.device_type.value,
            )
        baudrate = device.meta.baudrate
        if baudrate == BAUD_NOT_SUPPORTED or not isinstance(baudrate, int):
            raise ValueError(f"{self.label} does not support baudrate change")

        super().__init__(device)
        self._log = logger.for_device(device.id)
        self.port = device.path
        self.baudrate = baudrate
        self.parser = parser or RawLineParser()
        self.retry_options = retry_options or DEFAULT_RETRY_OPTIONS
        self.keep_alive_interval = keep_alive_interval
        self.read_timeout = read_timeout
        self.write_timeout = write_timeout
        self._serial_factory = serial_factory

        self._serial: Optional[serial.Serial] = None
        self._open = False
        self._reader_task: Optional[asyncio.Task] = None
        self._heartbeat: Optional[KeepAliveHeartbeat] = None

    @property
    def is_open(self) -> bool:
        return self._open

    async def open(self) -> None:
        """Open the port with backoff, then start reader and heartbeat."""
        if self._open:
            return

        async def attempt() -> serial.Serial:
            return await asyncio.to_thread(
                self._serial_factory,
                port=self.port,
                baudrate=self.baudrate,
                timeout=self.read_timeout,
                write_timeout=self.write_timeout,
            )

        self._serial = await with_exponential_backoff(attempt, self.retry_options)
        self._open = True
        self.parser.reset()
        self._reader_task = create_logged_task(
            self._read_loop(), logger=self._log, context=f"serial-reader:{self.device.id}",
        )
        self._heartbeat = KeepAliveHeartbeat(
            write=self._write_raw,
            is_open=lambda: self._open,
            interval=self.keep_alive_interval,
            on_failure=self._on_heartbeat_failure,
            name=self.device.id,
        )
        self._heartbeat.start()
        self._log.info("Opened %s at %d baud", self.port, self.baudrate)

    async def close(self) -> None:
        """Stop heartbeat and reader, then close the port."""
        if not self._open:
            return
        self._open = False

        heartbeat, self._heartbeat = self._heartbeat, None
        if heartbeat is not None:
            await heartbeat.stop()

        reader, self._reader_task = self._reader_task, None
        if reader is not None and reader is not asyncio.current_task():
            await cancel_task(reader)

        self.parser.reset()
        port, self._serial = self._serial, None
        if port is not None:
            try:
                await asyncio.to_thread(port.close)
            except (serial.SerialException, OSError) as e:
                self._log.error("Error closing %s: %s", self.port, e)
        self._log.info("Closed %s", self.port)

    async def _write_raw(self, data: bytes) -> None:
        port = self._serial
        if port is None or not self._open:
            raise AdapterError(f"{self.port} is not open")
        await asyncio.to_thread(port.write, data)
        await asyncio.to_thread(port.flush)

    def _read_available(self) -> bytes:
        port = self._serial
        if port is None:
            return b""
        data = port.read(1)
        if data:
            waiting = port.in_waiting
            if waiting:
                data += port.read(waiting)
        return data

    async def _read_loop(self) -> None:
        while self._open:
            try:
                chunk = await asyncio.to_thread(self._read_available)
            except (serial.SerialException, OSError) as e:
                if not self._open:
                    return
                self._log.error("Read error on %s: %s", self.port, e)
                await self._report_error(AdapterError(f"Read error on {self.port}: {e}"))
                return
            if not chunk or not self._open:
                continue
            for line in self.parser.feed(chunk):
                self._log.debug("Read from %s: %s", self.port, line)
                await self._dispatch_line(line)

    def _on_heartbeat_failure(self, exc: Exception) -> None:
        create_logged_task(
            self._report_error(AdapterError(f"Keep-alive failed on {self.port}: {exc}")),
            logger=self._log,
            context=f"keep-alive-error:{self.device.id}",
        )


class ScannerAdapter(SerialReaderAdapter):
    """Barcode scanner: every received chunk is one trimmed barcode."""

    device_type = DeviceType.SCANNER
    label = "Barcode scanner"

    def __init__(self, device: TerminalDevice, **kwargs):
        kwargs.setdefault("parser", RawLineParser())
        super().__init__(device, **kwargs)


class ScaleAdapter(SerialReaderAdapter):
    """Weight scale: readings are ``\\r\\n``-terminated lines."""

    device_type = DeviceType.SCALE
    label = "Weight scale"

    def __init__(self, device: TerminalDevice, **kwargs):
        kwargs.setdefault("parser", DelimitedLineParser(SCALE_DELIMITER))
        super().__init__(device, **kwargs)


__all__ = [
    "DelimitedLineParser",
    "LineParser",
    "RawLineParser",
    "SCALE_DELIMITER",
    "ScaleAdapter",
    "ScannerAdapter",
    "SerialReaderAdapter",
]
