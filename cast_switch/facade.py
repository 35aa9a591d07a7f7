"""Properties the host platform reads and writes."""

from __future__ import annotations

import logging
from typing import Callable, Optional

from .aggregator import PROP_CASTING_ON, PROP_STREAMING_DETECTED, StatusAggregator
from .gateway import CommandGateway
from .supervisor import SessionSupervisor

logger = logging.getLogger(__name__)


class CastSwitchState:
    """Synchronous view of the switch, the streaming sensor and the device.

    ``casting_on`` and ``streaming_detected`` are the two controllable
    properties; ``device_type``, ``device_address`` and ``device_id`` are
    descriptive and empty while no device is connected.
    """

    def __init__(
        self,
        name: str,
        aggregator: StatusAggregator,
        gateway: CommandGateway,
        supervisor: SessionSupervisor,
    ) -> None:
        self.name = name
        self._aggregator = aggregator
        self._gateway = gateway
        self._supervisor = supervisor

    @property
    def casting_on(self) -> bool:
        return self._aggregator.is_casting

    async def set_casting_on(self, on: bool) -> None:
        await self._gateway.set_casting(on)

    @property
    def streaming_detected(self) -> bool:
        return self._aggregator.streaming_detected

    @property
    def device_type(self) -> Optional[str]:
        identity = self._supervisor.identity
        return identity.device_type if identity else None

    @property
    def device_address(self) -> Optional[str]:
        identity = self._supervisor.identity
        return identity.address if identity else None

    @property
    def device_id(self) -> Optional[str]:
        identity = self._supervisor.identity
        return identity.device_id if identity else None

    def subscribe(self, callback: Callable[[str, bool], None]) -> None:
        """Call ``callback(name, value)`` when either property changes.

        ``name`` is ``"casting_on"`` or ``"streaming_detected"``.
        """
        self._aggregator.on_change(callback)

    def on_device_change(self, callback: Callable[[], None]) -> None:
        """Call ``callback()`` when the connected device (or its absence) changes."""
        self._supervisor.on_identity_change(lambda identity: callback())

    def as_dict(self) -> dict:
        return {
            "name": self.name,
            PROP_CASTING_ON: self.casting_on,
            PROP_STREAMING_DETECTED: self.streaming_detected,
            "device_type": self.device_type,
            "device_address": self.device_address,
            "device_id": self.device_id,
        }
