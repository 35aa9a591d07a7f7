"""Configuration for the Cast switch service."""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import asdict, dataclass
from pathlib import Path

logger = logging.getLogger(__name__)


class ConfigError(ValueError):
    """Raised when the configuration cannot be used."""


@dataclass
class CastSwitchConfig:
    """Service configuration, loaded from config.json."""

    name: str = "Chromecast"
    chromecast_device_name: str = ""
    switch_off_delay: int = 0  # ms the streaming sensor stays on after stop
    connect_timeout: float = 30.0  # seconds

    # Home Assistant bridge (disabled while url or token is empty)
    ha_url: str = ""
    ha_token: str = ""
    ha_switch_entity: str = ""
    ha_sensor_entity: str = ""

    @classmethod
    def load(cls, path: str | Path) -> CastSwitchConfig:
        path = Path(path)
        if path.exists():
            with open(path) as f:
                data = json.load(f)
            known = {k for k in cls.__dataclass_fields__}
            filtered = {k: v for k, v in data.items() if k in known}
            return cls(**filtered)
        logger.warning("Config not found at %s, using defaults", path)
        return cls()

    def save(self, path: str | Path) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(asdict(self), f, indent=2)

    def apply_env(self) -> None:
        """Fill HA connection settings from ``HA_URL`` / ``HA_TOKEN``."""
        if not self.ha_url:
            self.ha_url = os.getenv("HA_URL", "")
        if not self.ha_token:
            self.ha_token = os.getenv("HA_TOKEN", "")

    def validate(self) -> None:
        if not self.chromecast_device_name.strip():
            raise ConfigError("chromecast_device_name is required")
        if isinstance(self.switch_off_delay, bool) or not isinstance(
            self.switch_off_delay, (int, float)
        ):
            raise ConfigError(
                f"switch_off_delay must be a number of milliseconds, "
                f"got {self.switch_off_delay!r}"
            )
        if self.switch_off_delay < 0:
            raise ConfigError("switch_off_delay must be non-negative")
        if self.connect_timeout <= 0:
            raise ConfigError("connect_timeout must be positive")

    @property
    def switch_off_delay_seconds(self) -> float:
        return self.switch_off_delay / 1000.0

    @property
    def ha_enabled(self) -> bool:
        return bool(self.ha_url and self.ha_token)

    @property
    def switch_entity_id(self) -> str:
        return self.ha_switch_entity or f"input_boolean.{slugify(self.name)}"

    @property
    def sensor_entity_id(self) -> str:
        return self.ha_sensor_entity or f"binary_sensor.{slugify(self.name)}_streaming"


def slugify(text: str) -> str:
    """Entity-id friendly form of a display name."""
    slug = re.sub(r"[^a-z0-9]+", "_", text.lower()).strip("_")
    return slug or "chromecast"
