"""
Read-capability manager shared by the scanner and scale managers.

Per device the manager moves through: no adapter -> adapter open ->
active (subscribed to the device's data channel) -> torn down on
disconnect. Consumer callbacks live in three registries and are never
cleared by a disconnect:

* persistent callbacks, bound to one device id
* global callbacks, fed by every device of this capability
* pending-default callbacks, registered while no default device is known
  and moved onto the default device the moment it connects

Two policy flags capture where scanners and scales differ; see
``ScannerManager`` and ``ScaleManager``.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from functools import partial
from typing import Callable, Dict, List, Optional, Union

from ..core.asyncio_utils import KeyedTasks, create_logged_task
from ..core.connection import DEFAULT_RETRY_OPTIONS, RetryOptions
from ..core.connection.keep_alive import DEFAULT_KEEP_ALIVE_INTERVAL
from ..core.devices.events import Subscription, dispatch_isolated
from ..core.devices.reconciler import DeviceReconciler
from ..core.devices.types import Baudrate, DeviceType, TerminalDevice
from ..core.errors import (
    DeviceNotFoundError,
    DeviceTypeMismatchError,
    NoDefaultDeviceError,
    ReadTimeoutError,
)
from ..core.logging_utils import get_module_logger
from ..core.transports.serial_transport import SerialReaderAdapter

DataCallback = Callable[[str], object]
AdapterBuilder = Callable[..., SerialReaderAdapter]


class ReadCapabilityManager(ABC):
    """Adapter pool plus callback registries for one read capability."""

    device_type: DeviceType = DeviceType.UNASSIGNED
    noun = "device"
    timeout_label = "Read"

    # Auto-start on global callbacks alone only when the device is default.
    auto_start_on_global_requires_default = False
    # Stop a device once its last callback is removed and no globals remain.
    auto_stop_on_last_callback = False
    # Track lost-default transitions for every device, not just this type.
    track_default_for_all_types = True

    def __init__(
        self,
        reconciler: DeviceReconciler,
        retry_options: Optional[RetryOptions] = None,
        keep_alive_interval: float = DEFAULT_KEEP_ALIVE_INTERVAL,
        default_timeout: float = 10.0,
        adapter_builder: Optional[AdapterBuilder] = None,
    ):
        self.logger = get_module_logger(type(self).__name__)
        self._reconciler = reconciler
        self._events = reconciler.event_bus
        self.retry_options = retry_options or DEFAULT_RETRY_OPTIONS
        self.keep_alive_interval = keep_alive_interval
        self.default_timeout = default_timeout
        self._adapter_builder = adapter_builder

        self._adapters: Dict[str, SerialReaderAdapter] = {}
        self._adapter_locks: Dict[str, asyncio.Lock] = {}
        self._active: Dict[str, Subscription] = {}
        self._persistent: Dict[str, List[DataCallback]] = {}
        self._global: List[DataCallback] = []
        self._pending_default: List[DataCallback] = []
        self._previous_default: Dict[str, bool] = {}
        self._starting = KeyedTasks(self.logger)
        self._background: set = set()

        self._subscriptions = [
            reconciler.on_device_connect(self._handle_connect),
            reconciler.on_device_disconnect(self._handle_disconnect),
        ]

    # =========================================================================
    # Adapter construction
    # =========================================================================

    @abstractmethod
    def _default_adapter(self, device: TerminalDevice, **kwargs) -> SerialReaderAdapter:
        ...

    def _create_adapter(self, device: TerminalDevice) -> SerialReaderAdapter:
        builder = self._adapter_builder or self._default_adapter
        return builder(
            device,
            retry_options=self.retry_options,
            keep_alive_interval=self.keep_alive_interval,
        )

    def _lock_for(self, device_id: str) -> asyncio.Lock:
        lock = self._adapter_locks.get(device_id)
        if lock is None:
            lock = self._adapter_locks[device_id] = asyncio.Lock()
        return lock

    async def ensure_adapter(
        self,
        device: TerminalDevice,
        baudrate: Optional[Baudrate] = None,
    ) -> SerialReaderAdapter:
        """Return the open adapter for ``device``, creating it if needed.

        A ``baudrate`` different from the configured one is persisted first.
        """
        if device.device_type is not self.device_type:
            raise DeviceTypeMismatchError(device.id, self.noun, device.device_type.value)

        if baudrate is not None and device.meta.baudrate != baudrate:
            updated = self._reconciler.config_store.update(device.vid, device.pid, {"baudrate": baudrate})
            if updated is None:
                raise ValueError(f"Could not set baudrate {baudrate!r} for {device.id}")
            device.meta = device.meta.copy(baudrate=baudrate)

        async with self._lock_for(device.id):
            existing = self._adapters.get(device.id)
            if existing is not None:
                if existing.baudrate == device.meta.baudrate:
                    return existing
                await self._close_adapter_locked(device.id)

            adapter = self._create_adapter(device)
            adapter.on_error(partial(self._handle_adapter_error, device.id))
            adapter.read(partial(self._events.emit_device_data, device.id))
            await adapter.open()
            self._adapters[device.id] = adapter
            self.logger.info("%s adapter created for %s", self.noun.capitalize(), device.id)
            return adapter

    async def close_adapter(self, device_id: str) -> None:
        async with self._lock_for(device_id):
            await self._close_adapter_locked(device_id)

    async def _close_adapter_locked(self, device_id: str) -> None:
        adapter = self._adapters.pop(device_id, None)
        if adapter is None:
            return
        try:
            await adapter.close()
        except Exception as exc:
            self.logger.error("Error closing %s adapter for %s: %s", self.noun, device_id, exc)

    async def close_all_adapters(self) -> None:
        for device_id in list(self._adapters):
            await self.close_adapter(device_id)
        for device_id in list(self._active):
            self._deactivate(device_id)

    async def _handle_adapter_error(self, device_id: str, error: BaseException) -> None:
        self.logger.error("%s adapter error for %s: %s", self.noun.capitalize(), device_id, error)
        await self._events.emit_device_error(device_id, error)
        self._deactivate(device_id)
        await self.close_adapter(device_id)

    # =========================================================================
    # Start / stop
    # =========================================================================

    async def _start_device(self, device: TerminalDevice) -> None:
        await self.ensure_adapter(device)
        if device.id not in self._active:
            self._active[device.id] = self._events.on_device_data(
                device.id, partial(self._handle_data, device.id),
            )
            self.logger.info("Started reading from %s %s", self.noun, device.id)

    def _deactivate(self, device_id: str) -> None:
        subscription = self._active.pop(device_id, None)
        if subscription is not None:
            subscription.unsubscribe()

    async def stop_device(self, device_id: str) -> None:
        self._deactivate(device_id)
        await self.close_adapter(device_id)

    async def stop_default(self) -> None:
        default_id = self._reconciler.get_default_device_id(self.device_type)
        if default_id:
            await self.stop_device(default_id)
        self._pending_default.clear()

    async def stop_all(self) -> None:
        for device_id in list(self._active):
            await self.stop_device(device_id)

    def _schedule_stop(self, device_id: str) -> None:
        create_logged_task(
            self.stop_device(device_id),
            logger=self.logger,
            context=f"auto-stop:{device_id}",
            pending=self._background,
        )

    # =========================================================================
    # Callback registration
    # =========================================================================

    async def subscribe_device(self, device_id: str, callback: DataCallback) -> Subscription:
        """Register a persistent callback and start the device if present.

        An absent device is not an error: the callback waits for it to
        connect.
        """
        device = self._reconciler.get_device(device_id)
        if device is not None and device.device_type is not self.device_type:
            raise DeviceTypeMismatchError(device_id, self.noun, device.device_type.value)

        self._persistent.setdefault(device_id, []).append(callback)
        subscription = Subscription(lambda: self.remove_callback(device_id, callback))
        if device is None:
            self.logger.info("Device %s not found, callback queued until it connects", device_id)
            return subscription
        await self._start_device(device)
        return subscription

    async def subscribe_default(self, callback: DataCallback) -> Subscription:
        default_id = self._reconciler.get_default_device_id(self.device_type)
        if default_id is None:
            self.logger.info("No default %s found, callback queued until one connects", self.noun)
            self._pending_default.append(callback)
            return Subscription(lambda: self.remove_default_callback(callback))
        return await self.subscribe_device(default_id, callback)

    async def subscribe_all(self, callback: DataCallback) -> Subscription:
        """Register a global callback and start every eligible device."""
        self._global.append(callback)
        for device in self._reconciler.get_devices_by_type(self.device_type):
            if not self._may_start_for_globals(device):
                continue
            try:
                await self._start_device(device)
            except Exception as exc:
                self.logger.error("Failed to start reading from existing %s %s: %s",
                                  self.noun, device.id, exc)
        return Subscription(lambda: self._remove_global(callback))

    def remove_callback(self, device_id: str, callback: DataCallback) -> None:
        self._remove_persistent(device_id, callback, auto_stop=True)

    def _remove_persistent(self, device_id: str, callback: DataCallback, auto_stop: bool) -> None:
        callbacks = self._persistent.get(device_id)
        if not callbacks or callback not in callbacks:
            return
        callbacks.remove(callback)
        if not callbacks:
            del self._persistent[device_id]
            if (auto_stop and self.auto_stop_on_last_callback
                    and not self._global and device_id in self._active):
                self.logger.info("Last callback removed, stopping %s %s", self.noun, device_id)
                self._schedule_stop(device_id)

    def remove_default_callback(self, callback: DataCallback) -> None:
        if callback in self._pending_default:
            self._pending_default.remove(callback)
            return
        default_id = self._reconciler.get_default_device_id(self.device_type)
        if default_id:
            self.remove_callback(default_id, callback)

    def _remove_global(self, callback: DataCallback) -> None:
        if callback not in self._global:
            return
        self._global.remove(callback)
        if self.auto_stop_on_last_callback and not self._global:
            for device_id in list(self._active):
                if not self._persistent.get(device_id):
                    self._schedule_stop(device_id)

    def _may_start_for_globals(self, device: TerminalDevice) -> bool:
        return not self.auto_start_on_global_requires_default or device.is_default

    async def _handle_data(self, device_id: str, data: str) -> None:
        await dispatch_isolated(list(self._persistent.get(device_id, ())), f"{self.noun}[{device_id}]", data)
        await dispatch_isolated(list(self._global), f"{self.noun}[global]", data)

    # =========================================================================
    # One-shot reads
    # =========================================================================

    async def next_value(self, timeout: Optional[float] = None) -> str:
        default = self.get_default()
        if default is None:
            raise NoDefaultDeviceError(self.noun)
        return await self.next_value_from_device(default.id, timeout)

    async def next_value_from_device(self, device_id: str, timeout: Optional[float] = None) -> str:
        """Wait for the next value from ``device_id``.

        The temporary callback is removed on every exit path, so a timeout
        leaves no trace in the persistent registry. ``timeout`` covers
        opening the adapter as well as waiting for data. A device that was
        already reading, or is the default, keeps reading afterwards.
        """
        if timeout is None:
            timeout = self.default_timeout
        device = self._reconciler.get_device(device_id)
        if device is None:
            raise DeviceNotFoundError(device_id)
        if device.device_type is not self.device_type:
            raise DeviceTypeMismatchError(device_id, self.noun, device.device_type.value)

        future: asyncio.Future = asyncio.get_running_loop().create_future()
        auto_stop = device_id not in self._active and not device.is_default

        def once(data: str) -> None:
            self._remove_persistent(device_id, once, auto_stop)
            if not future.done():
                future.set_result(data)

        async def read() -> str:
            await self.subscribe_device(device_id, once)
            return await future

        try:
            return await asyncio.wait_for(read(), timeout)
        except asyncio.TimeoutError:
            raise ReadTimeoutError(self.timeout_label, timeout) from None
        finally:
            self._remove_persistent(device_id, once, auto_stop)

    # =========================================================================
    # Reconciler events
    # =========================================================================

    async def _handle_connect(self, device: TerminalDevice) -> None:
        is_default = device.is_default
        if self.track_default_for_all_types or device.device_type is self.device_type:
            was_default = self._previous_default.get(device.id, False)
            self._previous_default[device.id] = is_default
            if was_default and not is_default:
                self.logger.info("Stopping %s that lost default status: %s", self.noun, device.id)
                await self.stop_device(device.id)
                return

        if device.device_type is not self.device_type:
            if device.id in self._starting or device.id in self._adapters or device.id in self._active:
                # Reassigned to another type; persistent callbacks stay queued
                self.logger.info("Stopping %s reassigned as %s: %s",
                                 self.noun, device.device_type.value, device.id)
                await self._starting.cancel(device.id)
                await self.stop_device(device.id)
            return

        has_callbacks = bool(self._persistent.get(device.id))
        migrated = 0
        if is_default and self._pending_default:
            migrated = len(self._pending_default)
            self._persistent.setdefault(device.id, []).extend(self._pending_default)
            self._pending_default.clear()
            self.logger.info("Moved %d pending callback(s) to default %s %s",
                             migrated, self.noun, device.id)
        has_globals = bool(self._global) and self._may_start_for_globals(device)

        if has_callbacks or migrated or has_globals or is_default:
            self._spawn_start(device)

    def _spawn_start(self, device: TerminalDevice) -> None:
        self._starting.spawn(device.id, self._auto_start(device), context=f"auto-start:{device.id}")

    async def _auto_start(self, device: TerminalDevice) -> None:
        try:
            await self._start_device(device)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self.logger.error("Failed to auto-start %s %s: %s", self.noun, device.id, exc)
            return
        self.logger.info("Auto-started %s %s", self.noun, device.id)

    async def _handle_disconnect(self, device: TerminalDevice) -> None:
        await self._starting.cancel(device.id)
        self._deactivate(device.id)
        await self.close_adapter(device.id)

    async def settle(self) -> None:
        """Wait for pending auto-starts and auto-stops to finish."""
        pending = self._starting.tasks() + list(self._background)
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    async def close(self) -> None:
        """Detach from the reconciler and release every adapter."""
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions.clear()
        await self._starting.cancel_all()
        await self.close_all_adapters()

    # =========================================================================
    # Queries
    # =========================================================================

    def is_active(self, device_id: str) -> bool:
        return device_id in self._active

    def get_active_devices(self) -> List[str]:
        return list(self._active)

    def get_capability_devices(self) -> List[TerminalDevice]:
        return self._reconciler.get_devices_by_type(self.device_type)

    def get_default(self) -> Optional[TerminalDevice]:
        return self._reconciler.get_default_device(self.device_type)

    def callback_count(self, device_id: Union[str, None] = None) -> int:
        """Persistent callbacks for ``device_id``, or global ones when None."""
        if device_id is None:
            return len(self._global)
        return len(self._persistent.get(device_id, ()))

    @property
    def pending_default_count(self) -> int:
        return len(self._pending_default)


__all__ = ["DataCallback", "ReadCapabilityManager"]
