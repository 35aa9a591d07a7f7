"""Tests for the property view handed to the host platform."""

from __future__ import annotations

import pytest

from cast_switch.facade import CastSwitchState
from cast_switch.gateway import CommandGateway
from cast_switch.supervisor import SessionSupervisor
from fakes import IDENTITY


@pytest.fixture
def supervisor(aggregator, factory):
    return SessionSupervisor(aggregator, factory)


@pytest.fixture
def state(aggregator, supervisor):
    gateway = CommandGateway(aggregator, lambda: supervisor.media)
    return CastSwitchState("TV", aggregator, gateway, supervisor)


class TestCastSwitchState:
    def test_no_device(self, state):
        assert state.as_dict() == {
            "name": "TV",
            "casting_on": False,
            "streaming_detected": False,
            "device_type": None,
            "device_address": None,
            "device_id": None,
        }

    @pytest.mark.asyncio
    async def test_device_properties(self, state, supervisor):
        supervisor.device_found(IDENTITY)
        await supervisor.process_pending()
        assert state.device_type == "Chromecast Ultra"
        assert state.device_address == "192.168.1.20:8009"
        assert state.device_id == IDENTITY.device_id

    @pytest.mark.asyncio
    async def test_set_and_subscribe(self, state):
        changes = []
        state.subscribe(lambda name, value: changes.append((name, value)))
        await state.set_casting_on(True)
        assert state.casting_on is True
        assert state.streaming_detected is True
        assert changes == [("casting_on", True), ("streaming_detected", True)]

    @pytest.mark.asyncio
    async def test_device_change_notified(self, state, supervisor):
        addresses = []
        state.on_device_change(lambda: addresses.append(state.device_address))
        supervisor.device_found(IDENTITY)
        await supervisor.process_pending()
        await supervisor.device_timeout()
        assert addresses == ["192.168.1.20:8009", None]
