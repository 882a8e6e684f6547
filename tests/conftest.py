"""Shared pytest configuration and fixtures for the pos_devices test suite."""

import sys
from pathlib import Path

import pytest

# Ensure the project root is in the path for imports
PROJECT_ROOT = Path(__file__).parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from pos_devices.core.devices import (  # noqa: E402
    DeviceConfigStore,
    DeviceEventBus,
    DeviceReconciler,
    MemoryStore,
)
from tests.infrastructure.mocks.usb_mocks import FakeHardware  # noqa: E402


# =============================================================================
# Pytest Configuration
# =============================================================================

def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "hardware: mark test as requiring physical hardware"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )
    config.addinivalue_line(
        "markers", "asyncio: mark test as async"
    )


def pytest_addoption(parser):
    """Add custom command-line options."""
    parser.addoption(
        "--run-hardware",
        action="store_true",
        default=False,
        help="Run tests that require physical hardware",
    )


def pytest_collection_modifyitems(config, items):
    """Skip hardware tests unless --run-hardware is specified."""
    if config.getoption("--run-hardware"):
        return

    skip_hardware = pytest.mark.skip(reason="Need --run-hardware option to run")
    for item in items:
        if "hardware" in item.keywords:
            item.add_marker(skip_hardware)


# =============================================================================
# Shared Fixtures
# =============================================================================

@pytest.fixture
def memory_store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def config_store(memory_store) -> DeviceConfigStore:
    return DeviceConfigStore(memory_store)


@pytest.fixture
def hardware() -> FakeHardware:
    """Mutable fake USB/serial enumeration."""
    return FakeHardware()


@pytest.fixture
def reconciler(hardware, config_store) -> DeviceReconciler:
    """Reconciler over fake hardware, hot-plug polling disabled."""
    return DeviceReconciler(
        detector=hardware.detector(),
        config_store=config_store,
        event_bus=DeviceEventBus(),
        enable_hotplug=False,
        coalesce_delay=0.0,
    )

