"""Unit tests for settings loading."""

from pathlib import Path

import pytest

from pos_devices.core.connection import DEFAULT_RETRY_OPTIONS
from pos_devices.core.settings import (
    DeviceSettings,
    load_settings,
    load_settings_async,
    parse_settings_lines,
    settings_from_mapping,
)

SAMPLE = """
# device settings
scanner_retry_attempts = 5
scanner_retry_base_delay = 0.5
scale_retry_max_delay = 2   # seconds
keep_alive_interval = 30
hotplug_enabled = off
scan_timeout = 3
log_level = debug
storage_path = "/tmp/pos/devices.json"
"""


class TestParsing:

    def test_parse_lines(self):
        values = parse_settings_lines(SAMPLE.splitlines())

        assert values["scanner_retry_attempts"] == "5"
        assert values["scale_retry_max_delay"] == "2"
        assert values["storage_path"] == "/tmp/pos/devices.json"
        assert "# device settings" not in values

    def test_from_mapping(self):
        settings = settings_from_mapping(parse_settings_lines(SAMPLE.splitlines()))

        assert settings.scanner_retry.max_attempts == 5
        assert settings.scanner_retry.base_delay == 0.5
        assert settings.scale_retry.max_delay == 2.0
        assert settings.scale_retry.max_attempts == DEFAULT_RETRY_OPTIONS.max_attempts
        assert settings.keep_alive_interval == 30.0
        assert settings.hotplug_enabled is False
        assert settings.scan_timeout == 3.0
        assert settings.weight_timeout == 5.0
        assert settings.log_level == "DEBUG"
        assert settings.storage_path == Path("/tmp/pos/devices.json")

    @pytest.mark.parametrize("values", [
        {"scan_timeout": "soon"},
        {"scan_timeout": "-1"},
        {"hotplug_enabled": "maybe"},
        {"keep_alive_interval": "0"},
    ])
    def test_bad_values_fall_back(self, values):
        settings = settings_from_mapping(values)
        defaults = DeviceSettings()

        assert settings.scan_timeout == defaults.scan_timeout
        assert settings.hotplug_enabled == defaults.hotplug_enabled
        assert settings.keep_alive_interval == defaults.keep_alive_interval

    def test_invalid_retry_block_falls_back(self):
        settings = settings_from_mapping({"scale_retry_attempts": "0"})
        assert settings.scale_retry == DEFAULT_RETRY_OPTIONS


class TestLoading:

    def test_missing_file(self, tmp_path):
        assert load_settings(tmp_path / "missing.txt") == DeviceSettings()

    def test_sync_load(self, tmp_path):
        path = tmp_path / "settings.txt"
        path.write_text(SAMPLE)

        assert load_settings(path).scanner_retry.max_attempts == 5

    @pytest.mark.asyncio
    async def test_async_load(self, tmp_path):
        path = tmp_path / "settings.txt"
        path.write_text(SAMPLE)

        settings = await load_settings_async(path)

        assert settings == load_settings(path)

    @pytest.mark.asyncio
    async def test_async_missing_file(self, tmp_path):
        assert await load_settings_async(tmp_path / "missing.txt") == DeviceSettings()
