"""
Spooler-backed printer adapter.

Connectionless between jobs: each ``write`` encodes the job and opens,
writes and closes a spooler handle for the device's queue name.
"""

import asyncio
from typing import Optional, Protocol

from ...devices.types import DeviceType, TerminalDevice
from ...errors import AdapterError, DeviceTypeMismatchError
from ...logging_utils import get_module_logger
from ..base_transport import WritableAdapter
from .escpos_encoder import EscPosEncoder

logger = get_module_logger("SpoolerPrinter")


class RawSpooler(Protocol):
    def write_raw(self, printer_name: str, data: bytes, job_name: str = ...) -> int: ...


class SpoolerPrinterAdapter(WritableAdapter):
    """Prints through the OS spooler queue named by ``device.name``."""

    def __init__(
        self,
        device: TerminalDevice,
        spooler: Optional[RawSpooler] = None,
        encoder: Optional[EscPosEncoder] = None,
    ):
        if device.device_type is not DeviceType.PRINTER:
            raise DeviceTypeMismatchError(device.id, "printer", device.device_type.value)
        super().__init__(device)
        if spooler is None:
            from .spooler import Win32SpoolerBackend
            spooler = Win32SpoolerBackend()
        self._spooler = spooler
        self._encoder = encoder or EscPosEncoder()
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    async def open(self) -> None:
        # Nothing to hold open; a handle is taken per job.
        self._open = True

    async def close(self) -> None:
        self._open = False

    async def write(self, data: str, is_image: bool = False) -> None:
        printer_name = self.device.name
        logger.debug("Printing %s to %s (%d chars)",
                     "image" if is_image else "text", printer_name, len(data))
        try:
            job = await asyncio.to_thread(self._encoder.encode, data, is_image)
            await asyncio.to_thread(self._spooler.write_raw, printer_name, job)
        except Exception as e:
            logger.error("Print to %s failed: %s", printer_name, e)
            raise AdapterError(f"Printer error: {e}") from e


__all__ = ["RawSpooler", "SpoolerPrinterAdapter"]
