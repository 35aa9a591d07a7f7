"""Tests for the command gateway."""

from __future__ import annotations

import pytest

from cast_switch.gateway import CommandGateway
from cast_switch.transport import TransportError
from fakes import FakeMedia


def _gateway(aggregator, media):
    return CommandGateway(aggregator, lambda: media)


class TestSetCasting:
    @pytest.mark.asyncio
    async def test_no_media_session_only_updates_state(self, aggregator):
        gw = _gateway(aggregator, None)
        await gw.set_casting(True)
        assert aggregator.is_casting is True

    @pytest.mark.asyncio
    async def test_turn_on_sends_play_once(self, aggregator):
        media = FakeMedia()
        gw = _gateway(aggregator, media)

        await gw.set_casting(True)
        await gw.set_casting(True)

        assert media.play_calls == 1
        assert media.stop_calls == 0
        assert aggregator.is_casting is True

    @pytest.mark.asyncio
    async def test_turn_off_while_casting_sends_stop(self, aggregator):
        media = FakeMedia()
        aggregator.set_is_casting(True)
        gw = _gateway(aggregator, media)

        await gw.set_casting(False)

        assert media.stop_calls == 1
        assert media.play_calls == 0
        assert aggregator.is_casting is False

    @pytest.mark.asyncio
    async def test_turn_off_while_idle_sends_nothing(self, aggregator):
        media = FakeMedia()
        gw = _gateway(aggregator, media)
        await gw.set_casting(False)
        assert media.stop_calls == 0
        assert media.play_calls == 0

    @pytest.mark.asyncio
    async def test_command_failure_is_not_raised(self, aggregator):
        media = FakeMedia(error=TransportError("socket closed"))
        gw = _gateway(aggregator, media)

        await gw.set_casting(True)

        assert media.play_calls == 1
        # Optimistic value stays until a status push corrects it
        assert aggregator.is_casting is True

    @pytest.mark.asyncio
    async def test_media_looked_up_per_command(self, aggregator):
        holder = {"media": None}
        gw = CommandGateway(aggregator, lambda: holder["media"])

        await gw.set_casting(True)
        await gw.set_casting(False)
        holder["media"] = FakeMedia()
        await gw.set_casting(True)

        assert holder["media"].play_calls == 1
