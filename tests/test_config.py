"""Tests for the service configuration."""

from __future__ import annotations

import json

import pytest

from cast_switch.config import CastSwitchConfig, ConfigError, slugify


class TestConfig:
    def test_defaults(self):
        config = CastSwitchConfig()
        assert config.name == "Chromecast"
        assert config.switch_off_delay == 0
        assert config.connect_timeout == 30.0
        assert config.ha_enabled is False

    def test_save_and_load(self, tmp_path):
        path = tmp_path / "nested" / "config.json"
        CastSwitchConfig(
            name="TV", chromecast_device_name="Living Room", switch_off_delay=2500,
        ).save(path)

        loaded = CastSwitchConfig.load(path)
        assert loaded.name == "TV"
        assert loaded.chromecast_device_name == "Living Room"
        assert loaded.switch_off_delay == 2500
        assert loaded.switch_off_delay_seconds == 2.5

    def test_unknown_keys_ignored(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({
            "accessory": "ChromecastSwitch",
            "chromecast_device_name": "Kitchen",
        }))
        assert CastSwitchConfig.load(path).chromecast_device_name == "Kitchen"

    def test_missing_file_uses_defaults(self, tmp_path):
        assert CastSwitchConfig.load(tmp_path / "absent.json") == CastSwitchConfig()

    def test_entity_ids_default_from_name(self):
        config = CastSwitchConfig(name="Living Room TV")
        assert config.switch_entity_id == "input_boolean.living_room_tv"
        assert config.sensor_entity_id == "binary_sensor.living_room_tv_streaming"

    def test_entity_ids_explicit(self):
        config = CastSwitchConfig(ha_switch_entity="input_boolean.cast")
        assert config.switch_entity_id == "input_boolean.cast"

    def test_slugify_fallback(self):
        assert slugify("***") == "chromecast"

    def test_apply_env(self, monkeypatch):
        monkeypatch.setenv("HA_URL", "http://ha:8123")
        monkeypatch.setenv("HA_TOKEN", "tok")
        config = CastSwitchConfig()
        config.apply_env()
        assert config.ha_enabled

    def test_apply_env_keeps_explicit_values(self, monkeypatch):
        monkeypatch.setenv("HA_URL", "http://other:8123")
        config = CastSwitchConfig(ha_url="http://ha:8123")
        config.apply_env()
        assert config.ha_url == "http://ha:8123"


class TestValidate:
    def test_valid(self):
        CastSwitchConfig(chromecast_device_name="Living Room").validate()

    @pytest.mark.parametrize("kwargs", [
        {},
        {"chromecast_device_name": "   "},
        {"chromecast_device_name": "TV", "switch_off_delay": -1},
        {"chromecast_device_name": "TV", "switch_off_delay": "5000"},
        {"chromecast_device_name": "TV", "switch_off_delay": True},
        {"chromecast_device_name": "TV", "connect_timeout": 0},
    ])
    def test_invalid(self, kwargs):
        with pytest.raises(ConfigError):
            CastSwitchConfig(**kwargs).validate()
