"""Weight scale manager."""

from ..core.devices.types import DeviceType, TerminalDevice
from ..core.transports.serial_transport import ScaleAdapter
from .capability_manager import ReadCapabilityManager

DEFAULT_WEIGHT_TIMEOUT = 5.0


class ScaleManager(ReadCapabilityManager):
    """
    Routes weight readings to consumer callbacks.

    Unlike scanners, a scale is only auto-started for global callbacks when
    it is the default scale, and it is stopped as soon as its last callback
    goes away while no global callbacks remain. Lost-default transitions
    are tracked for scale devices only.
    """

    device_type = DeviceType.SCALE
    noun = "scale"
    timeout_label = "Weight reading"

    auto_start_on_global_requires_default = True
    auto_stop_on_last_callback = True
    track_default_for_all_types = False

    def __init__(self, reconciler, default_timeout: float = DEFAULT_WEIGHT_TIMEOUT, **kwargs):
        super().__init__(reconciler, default_timeout=default_timeout, **kwargs)

    def _default_adapter(self, device: TerminalDevice, **kwargs) -> ScaleAdapter:
        return ScaleAdapter(device, **kwargs)

    read_from_device = ReadCapabilityManager.subscribe_device
    read_from_default = ReadCapabilityManager.subscribe_default
    on_weight_data = ReadCapabilityManager.subscribe_all
    stop_reading = ReadCapabilityManager.stop_device
    stop_reading_from_default = ReadCapabilityManager.stop_default
    stop_all_reading = ReadCapabilityManager.stop_all
    get_current_weight = ReadCapabilityManager.next_value
    get_current_weight_from_device = ReadCapabilityManager.next_value_from_device
    is_reading = ReadCapabilityManager.is_active
    get_active_scales = ReadCapabilityManager.get_active_devices
    ensure_scale_adapter = ReadCapabilityManager.ensure_adapter
    close_scale_adapter = ReadCapabilityManager.close_adapter
    close_all_scale_adapters = ReadCapabilityManager.close_all_adapters
    get_scale_devices = ReadCapabilityManager.get_capability_devices
    get_default_scale = ReadCapabilityManager.get_default


__all__ = ["DEFAULT_WEIGHT_TIMEOUT", "ScaleManager"]
