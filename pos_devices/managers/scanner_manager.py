"""Barcode scanner manager."""

from ..core.devices.types import DeviceType, TerminalDevice
from ..core.transports.serial_transport import ScannerAdapter
from .capability_manager import ReadCapabilityManager

DEFAULT_SCAN_TIMEOUT = 10.0


class ScannerManager(ReadCapabilityManager):
    """
    Routes scanned barcodes to consumer callbacks.

    Global callbacks auto-start any scanner that connects, default or not,
    and scanners keep running when their last callback is removed. A
    device that loses default status is stopped whatever its type.
    """

    device_type = DeviceType.SCANNER
    noun = "scanner"
    timeout_label = "Scan reading"

    auto_start_on_global_requires_default = False
    auto_stop_on_last_callback = False
    track_default_for_all_types = True

    def __init__(self, reconciler, default_timeout: float = DEFAULT_SCAN_TIMEOUT, **kwargs):
        super().__init__(reconciler, default_timeout=default_timeout, **kwargs)

    def _default_adapter(self, device: TerminalDevice, **kwargs) -> ScannerAdapter:
        return ScannerAdapter(device, **kwargs)

    scan_from_device = ReadCapabilityManager.subscribe_device
    scan_from_default = ReadCapabilityManager.subscribe_default
    on_scan_data = ReadCapabilityManager.subscribe_all
    stop_scanning = ReadCapabilityManager.stop_device
    stop_scanning_from_default = ReadCapabilityManager.stop_default
    stop_all_scanning = ReadCapabilityManager.stop_all
    get_next_scan = ReadCapabilityManager.next_value
    get_next_scan_from_device = ReadCapabilityManager.next_value_from_device
    is_scanning = ReadCapabilityManager.is_active
    get_active_scanners = ReadCapabilityManager.get_active_devices
    ensure_scanner_adapter = ReadCapabilityManager.ensure_adapter
    close_scanner_adapter = ReadCapabilityManager.close_adapter
    close_all_scanner_adapters = ReadCapabilityManager.close_all_adapters
    get_scanner_devices = ReadCapabilityManager.get_capability_devices
    get_default_scanner = ReadCapabilityManager.get_default


__all__ = ["DEFAULT_SCAN_TIMEOUT", "ScannerManager"]
