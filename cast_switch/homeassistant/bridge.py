"""Mirror the switch state into Home Assistant and take commands back.

  castingOn          ↔  input_boolean (turn_on/turn_off; user toggles come back
                        over the websocket and go to the command gateway)
  streamingDetected  →  binary_sensor set through POST /api/states

HA echoes every ``input_boolean`` write back as a ``state_changed`` event.
Those echoes are matched against the values written, oldest first, and
dropped so they are never mistaken for a user toggle.
"""

from __future__ import annotations

import asyncio
import collections
import logging
from typing import Optional

from ..aggregator import PROP_CASTING_ON, PROP_STREAMING_DETECTED
from ..facade import CastSwitchState
from .client import HAClient, HAClientError
from .websocket import HAWebSocketListener

logger = logging.getLogger(__name__)

_STOP = object()


def _on_off(value: bool) -> str:
    return "on" if value else "off"


class HomeAssistantBridge:
    """Publishes :class:`CastSwitchState` changes to HA, in order."""

    def __init__(
        self,
        state: CastSwitchState,
        client: HAClient,
        listener: Optional[HAWebSocketListener],
        switch_entity: str,
        sensor_entity: str,
    ) -> None:
        self.state = state
        self.client = client
        self.listener = listener
        self.switch_entity = switch_entity
        self.sensor_entity = sensor_entity
        self._outbox: asyncio.Queue = asyncio.Queue()
        self._expected_echoes: collections.deque[str] = collections.deque()
        self._switch_state: Optional[str] = None
        self._publisher: Optional[asyncio.Task] = None
        self._commands: set[asyncio.Task] = set()

    async def start(self) -> None:
        self.state.subscribe(self._on_property_change)
        self.state.on_device_change(self._on_device_change)
        if self.listener is not None:
            self.listener.on_state_change(self._on_ha_state_change)
            await self.listener.start()
        self._publisher = asyncio.get_running_loop().create_task(self._publish_loop())
        # Initial snapshot so HA reflects the current state after a restart.
        self._outbox.put_nowait((PROP_CASTING_ON, self.state.casting_on))
        self._outbox.put_nowait((PROP_STREAMING_DETECTED, self.state.streaming_detected))
        logger.info(
            "Home Assistant bridge started (%s, %s)", self.switch_entity, self.sensor_entity,
        )

    async def stop(self) -> None:
        if self.listener is not None:
            await self.listener.stop()
        if self._publisher is not None:
            self._outbox.put_nowait(_STOP)
            try:
                await asyncio.wait_for(self._publisher, timeout=5)
            except asyncio.TimeoutError:
                self._publisher.cancel()
            self._publisher = None
        for task in list(self._commands):
            task.cancel()
        await self.client.aclose()

    # ── Outgoing ──────────────────────────────────────────────────

    def _on_property_change(self, name: str, value: bool) -> None:
        self._outbox.put_nowait((name, value))

    def _on_device_change(self) -> None:
        # The sensor carries the device attributes; rewrite it with fresh ones.
        self._outbox.put_nowait((PROP_STREAMING_DETECTED, self.state.streaming_detected))

    async def _publish_loop(self) -> None:
        await self._seed_switch_state()
        while True:
            item = await self._outbox.get()
            if item is _STOP:
                return
            name, value = item
            try:
                await self.publish(name, value)
            except HAClientError as exc:
                logger.warning("Publishing %s to Home Assistant failed: %s", name, exc)

    async def publish(self, name: str, value: bool) -> None:
        if name == PROP_CASTING_ON:
            state = _on_off(value)
            if state == self._switch_state:
                return  # HA only echoes real changes
            previous, self._switch_state = self._switch_state, state
            self._expected_echoes.append(state)
            try:
                await self.client.call_service(
                    "input_boolean", f"turn_{state}", {"entity_id": self.switch_entity},
                )
            except HAClientError:
                self._expected_echoes.pop()
                self._switch_state = previous
                raise
        elif name == PROP_STREAMING_DETECTED:
            await self.client.set_state(
                self.sensor_entity, _on_off(value), self._sensor_attributes(),
            )

    def _sensor_attributes(self) -> dict:
        return {
            "friendly_name": f"{self.state.name} Streaming",
            "device_class": "motion",
            "device_type": self.state.device_type,
            "device_address": self.state.device_address,
            "device_id": self.state.device_id,
        }

    # ── Incoming ──────────────────────────────────────────────────

    def _on_ha_state_change(self, entity_id: str, new_state: dict, old_state: dict | None) -> None:
        if entity_id != self.switch_entity:
            return
        value = new_state.get("state")
        if value not in ("on", "off"):
            return
        if old_state is not None and old_state.get("state") == value:
            return  # attribute-only change

        if self._expected_echoes:
            expected = self._expected_echoes.popleft()
            if expected == value:
                return
            logger.debug("Expected echo %s, got %s", expected, value)
        self._switch_state = value

        logger.info("Home Assistant requested casting %s", value)
        task = asyncio.get_running_loop().create_task(
            self.state.set_casting_on(value == "on")
        )
        self._commands.add(task)
        task.add_done_callback(self._commands.discard)

    async def _seed_switch_state(self) -> None:
        try:
            current = await self.client.get_state(self.switch_entity)
        except HAClientError as exc:
            logger.warning("Could not read %s from Home Assistant: %s", self.switch_entity, exc)
            return
        if current is None:
            logger.warning("%s does not exist in Home Assistant", self.switch_entity)
            return
        self._switch_state = current.get("state")
