"""Cast switch accessory: wires discovery, session, state and bridge.

  DeviceDiscovery ──found──▶ SessionSupervisor ──status──▶ StatusAggregator
                                   ▲                              │
  host platform ─▶ CommandGateway ─┘ (play/stop)                  ▼
                                                           CastSwitchState
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from . import __version__
from .aggregator import StatusAggregator
from .chromecast import connection_factory
from .config import CastSwitchConfig
from .discovery import DeviceDiscovery
from .facade import CastSwitchState
from .gateway import CommandGateway
from .homeassistant import HAClient, HAWebSocketListener, HomeAssistantBridge
from .supervisor import SessionSupervisor
from .transport import ConnectionFactory

logger = logging.getLogger(__name__)


class CastSwitchAccessory:
    """Runs one Cast device as a switch until stopped."""

    def __init__(
        self,
        config: CastSwitchConfig,
        factory: Optional[ConnectionFactory] = None,
    ) -> None:
        config.validate()
        self.config = config
        self.aggregator = StatusAggregator(config.switch_off_delay_seconds)
        self.supervisor = SessionSupervisor(
            self.aggregator,
            factory or connection_factory(config.connect_timeout),
            rediscover=self._rediscover,
        )
        self.gateway = CommandGateway(self.aggregator, lambda: self.supervisor.media)
        self.state = CastSwitchState(
            config.name, self.aggregator, self.gateway, self.supervisor,
        )
        self.discovery: Optional[DeviceDiscovery] = None
        self.bridge: Optional[HomeAssistantBridge] = None

    async def start(self) -> None:
        """Start discovery and process events until cancelled."""
        logger.info("=== Cast Switch v%s ===", __version__)
        logger.info(
            "Name: %s | Device: %s | Switch-off delay: %dms",
            self.config.name, self.config.chromecast_device_name,
            self.config.switch_off_delay,
        )

        if self.config.ha_enabled:
            self.bridge = HomeAssistantBridge(
                self.state,
                HAClient(self.config.ha_url, self.config.ha_token),
                HAWebSocketListener(
                    self.config.ha_url, self.config.ha_token,
                    entity_ids=[self.config.switch_entity_id],
                ),
                switch_entity=self.config.switch_entity_id,
                sensor_entity=self.config.sensor_entity_id,
            )
            await self.bridge.start()

        self.discovery = DeviceDiscovery(
            self.config.chromecast_device_name, self.supervisor.device_found,
        )
        self.discovery.start()

        try:
            await self.supervisor.run()
        except asyncio.CancelledError:
            pass

    async def stop(self) -> None:
        """Close discovery, the device connection and the bridge."""
        logger.info("Shutting down cast switch...")
        if self.discovery is not None:
            self.discovery.stop()
            self.discovery = None
        await self.supervisor.stop()
        if self.bridge is not None:
            await self.bridge.stop()
            self.bridge = None

    async def set_casting(self, on: bool) -> None:
        await self.state.set_casting_on(on)

    def _rediscover(self) -> None:
        if self.discovery is not None:
            self.discovery.restart()
