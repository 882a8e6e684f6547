"""
Native print spooler access (Windows, via pywin32).

``win32print`` only exists on Windows, so it is imported when a spooler
call is made rather than at module import.
"""

from typing import List

from ...devices.detector import SpoolerPrinterInfo
from ...logging_utils import get_module_logger

logger = get_module_logger("Spooler")


class Win32SpoolerBackend:
    """Enumerates printer queues and submits RAW jobs."""

    def list_printers(self) -> List[SpoolerPrinterInfo]:
        import win32print

        flags = win32print.PRINTER_ENUM_LOCAL | win32print.PRINTER_ENUM_CONNECTIONS
        return [
            SpoolerPrinterInfo(name=info["pPrinterName"], port_name=info["pPortName"] or "")
            for info in win32print.EnumPrinters(flags, None, 2)
        ]

    def write_raw(self, printer_name: str, data: bytes, job_name: str = "Receipt") -> int:
        """Send ``data`` unmodified to the named queue; returns bytes written."""
        import win32print

        handle = win32print.OpenPrinter(printer_name)
        try:
            win32print.StartDocPrinter(handle, 1, (job_name, None, "RAW"))
            try:
                win32print.StartPagePrinter(handle)
                written = win32print.WritePrinter(handle, data)
                win32print.EndPagePrinter(handle)
            finally:
                win32print.EndDocPrinter(handle)
        finally:
            win32print.ClosePrinter(handle)
        logger.debug("Spooled %d bytes to %s", written, printer_name)
        return written


__all__ = ["Win32SpoolerBackend"]
