"""Tests for the Home Assistant bridge."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from cast_switch.aggregator import PROP_CASTING_ON, PROP_STREAMING_DETECTED
from cast_switch.events import ConnectionClosed
from cast_switch.facade import CastSwitchState
from cast_switch.gateway import CommandGateway
from cast_switch.homeassistant.bridge import HomeAssistantBridge
from cast_switch.homeassistant.client import HAClientError
from cast_switch.supervisor import SessionSupervisor
from fakes import IDENTITY

SWITCH = "input_boolean.living_room"
SENSOR = "binary_sensor.living_room_streaming"


@pytest.fixture
def supervisor(aggregator, factory):
    return SessionSupervisor(aggregator, factory)


@pytest.fixture
def state(aggregator, supervisor):
    gateway = CommandGateway(aggregator, lambda: supervisor.media)
    return CastSwitchState("Living Room", aggregator, gateway, supervisor)


@pytest.fixture
def client():
    client = AsyncMock()
    client.get_state.return_value = {"entity_id": SWITCH, "state": "off"}
    return client


@pytest.fixture
def bridge(state, client):
    return HomeAssistantBridge(state, client, None, SWITCH, SENSOR)


class TestPublish:
    @pytest.mark.asyncio
    async def test_casting_on_turns_input_boolean_on(self, bridge, client):
        await bridge.publish(PROP_CASTING_ON, True)
        client.call_service.assert_awaited_once_with(
            "input_boolean", "turn_on", {"entity_id": SWITCH},
        )

    @pytest.mark.asyncio
    async def test_unchanged_switch_not_written(self, bridge, client):
        bridge._switch_state = "off"
        await bridge.publish(PROP_CASTING_ON, False)
        client.call_service.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_streaming_sets_sensor_state(self, bridge, client):
        await bridge.publish(PROP_STREAMING_DETECTED, True)
        entity, value, attributes = client.set_state.await_args[0]
        assert entity == SENSOR
        assert value == "on"
        assert attributes["friendly_name"] == "Living Room Streaming"
        assert attributes["device_class"] == "motion"
        assert attributes["device_address"] is None

    @pytest.mark.asyncio
    async def test_failure_rolls_back(self, bridge, client):
        bridge._switch_state = "off"
        client.call_service.side_effect = HAClientError("down")
        with pytest.raises(HAClientError):
            await bridge.publish(PROP_CASTING_ON, True)
        assert bridge._switch_state == "off"
        assert not bridge._expected_echoes


class TestIncoming:
    @pytest.mark.asyncio
    async def test_echo_of_own_write_ignored(self, bridge, aggregator):
        bridge._switch_state = "off"
        await bridge.publish(PROP_CASTING_ON, True)

        bridge._on_ha_state_change(SWITCH, {"state": "on"}, {"state": "off"})

        assert not bridge._commands
        assert aggregator.is_casting is False

    @pytest.mark.asyncio
    async def test_user_toggle_reaches_gateway(self, bridge, aggregator):
        bridge._on_ha_state_change(SWITCH, {"state": "on"}, {"state": "off"})
        tasks = list(bridge._commands)
        assert len(tasks) == 1
        await asyncio.gather(*tasks)

        assert aggregator.is_casting is True
        assert bridge._switch_state == "on"

    @pytest.mark.asyncio
    async def test_mismatched_echo_treated_as_user_toggle(self, bridge, aggregator):
        bridge._switch_state = "off"
        await bridge.publish(PROP_CASTING_ON, True)

        bridge._on_ha_state_change(SWITCH, {"state": "off"}, {"state": "on"})
        await asyncio.gather(*bridge._commands)

        assert not bridge._expected_echoes
        assert bridge._switch_state == "off"

    @pytest.mark.asyncio
    async def test_irrelevant_changes_ignored(self, bridge):
        bridge._on_ha_state_change("light.kitchen", {"state": "on"}, {"state": "off"})
        bridge._on_ha_state_change(SWITCH, {"state": "unavailable"}, {"state": "off"})
        bridge._on_ha_state_change(SWITCH, {"state": "on"}, {"state": "on"})
        assert not bridge._commands


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start_publishes_snapshot_and_changes(self, bridge, client, aggregator):
        await bridge.start()
        aggregator.set_is_casting(True)
        await bridge.stop()

        client.get_state.assert_awaited_once_with(SWITCH)
        # Snapshot "off" matches HA; only the change is written
        client.call_service.assert_awaited_once_with(
            "input_boolean", "turn_on", {"entity_id": SWITCH},
        )
        sensor_values = [call.args[1] for call in client.set_state.await_args_list]
        assert sensor_values == ["off", "on"]
        client.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_publish_error_does_not_stop_loop(self, bridge, client, aggregator):
        client.set_state.side_effect = [HAClientError("down"), {}]
        await bridge.start()
        aggregator.set_is_casting(True)
        await bridge.stop()
        assert client.set_state.await_count == 2

    @pytest.mark.asyncio
    async def test_listener_wired(self, state, client):
        listener = MagicMock()
        listener.start = AsyncMock()
        listener.stop = AsyncMock()
        bridge = HomeAssistantBridge(state, client, listener, SWITCH, SENSOR)

        await bridge.start()
        await bridge.stop()

        listener.on_state_change.assert_called_once_with(bridge._on_ha_state_change)
        listener.start.assert_awaited_once()
        listener.stop.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_sensor_republished_when_device_changes(
        self, bridge, client, supervisor, factory,
    ):
        async def settle():
            for _ in range(3):
                await asyncio.sleep(0)

        await bridge.start()
        await settle()

        supervisor.device_found(IDENTITY)
        await supervisor.process_pending()
        await settle()

        factory.last.emit(ConnectionClosed())
        await supervisor.process_pending()
        await bridge.stop()

        addresses = [call.args[2]["device_address"] for call in client.set_state.await_args_list]
        assert addresses == [None, "192.168.1.20:8009", None]
        sensor_values = [call.args[1] for call in client.set_state.await_args_list]
        assert sensor_values == ["off", "off", "off"]
