"""Unit tests for DeviceEventBus."""

import pytest

from pos_devices.core.devices.events import DeviceEventBus, dispatch_isolated
from pos_devices.core.devices.types import Capability, DeviceConfig, DeviceType, TerminalDevice


def make_device(device_id="device_0x1_0x2"):
    return TerminalDevice(
        id=device_id, vid="0x1", pid="0x2", path="/dev/ttyACM0",
        capabilities=frozenset({Capability.READ}),
        meta=DeviceConfig(DeviceType.SCANNER),
    )


@pytest.fixture
def bus():
    return DeviceEventBus()


class TestSubscriptions:

    @pytest.mark.asyncio
    async def test_connect_sync_and_async_handlers(self, bus):
        seen = []

        async def async_handler(device):
            seen.append(("async", device.id))

        bus.on_device_connect(lambda d: seen.append(("sync", d.id)))
        bus.on_device_connect(async_handler)
        await bus.emit_device_connect(make_device())

        assert seen == [("sync", "device_0x1_0x2"), ("async", "device_0x1_0x2")]

    @pytest.mark.asyncio
    async def test_unsubscribe_is_idempotent(self, bus):
        seen = []
        subscription = bus.on_device_connect(seen.append)
        subscription.unsubscribe()
        subscription.unsubscribe()

        await bus.emit_device_connect(make_device())

        assert seen == []
        assert subscription.active is False

    @pytest.mark.asyncio
    async def test_subscription_context_manager(self, bus):
        seen = []
        with bus.on_device_data("dev", seen.append):
            await bus.emit_device_data("dev", "a")
        await bus.emit_device_data("dev", "b")

        assert seen == ["a"]
        assert bus.data_handler_count("dev") == 0

    @pytest.mark.asyncio
    async def test_data_is_keyed_by_device(self, bus):
        seen = []
        bus.on_device_data("a", lambda data: seen.append(("a", data)))
        bus.on_device_data("b", lambda data: seen.append(("b", data)))

        await bus.emit_device_data("a", "123")
        await bus.emit_device_data("missing", "x")

        assert seen == [("a", "123")]


class TestIsolation:

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_block_others(self, bus):
        seen = []

        def broken(device):
            raise RuntimeError("boom")

        bus.on_device_connect(broken)
        bus.on_device_connect(lambda d: seen.append(d.id))
        await bus.emit_device_connect(make_device())

        assert seen == ["device_0x1_0x2"]

    @pytest.mark.asyncio
    async def test_handler_may_unsubscribe_itself(self, bus):
        seen = []
        subscription = None

        def once(data):
            seen.append(data)
            subscription.unsubscribe()

        subscription = bus.on_device_data("dev", once)
        bus.on_device_data("dev", lambda data: seen.append("other:" + data))

        await bus.emit_device_data("dev", "1")
        await bus.emit_device_data("dev", "2")

        assert seen == ["1", "other:1", "other:2"]

    @pytest.mark.asyncio
    async def test_dispatch_isolated_runs_all(self):
        seen = []

        async def broken(value):
            raise ValueError(value)

        await dispatch_isolated([broken, seen.append], "test", "x")
        assert seen == ["x"]


class TestDisconnect:

    @pytest.mark.asyncio
    async def test_disconnect_drops_data_subscribers_after_dispatch(self, bus):
        seen = []
        device = make_device()
        bus.on_device_data(device.id, seen.append)
        bus.on_device_disconnect(lambda d: seen.append(("handlers", bus.data_handler_count(d.id))))

        await bus.emit_device_disconnect(device)
        await bus.emit_device_data(device.id, "late")

        assert seen == [("handlers", 1)]
        assert bus.data_handler_count(device.id) == 0

    @pytest.mark.asyncio
    async def test_error_channel(self, bus):
        seen = []
        bus.on_device_error(lambda device_id, error: seen.append((device_id, str(error))))

        await bus.emit_device_error("dev", OSError("unplugged"))

        assert seen == [("dev", "unplugged")]

    @pytest.mark.asyncio
    async def test_clear(self, bus):
        seen = []
        bus.on_device_connect(seen.append)
        bus.on_device_data("dev", seen.append)
        bus.clear()

        await bus.emit_device_connect(make_device())
        await bus.emit_device_data("dev", "x")

        assert seen == []
