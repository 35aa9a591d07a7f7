"""Command gateway: turn external on/off intents into play/stop calls."""

from __future__ import annotations

import logging
from typing import Callable, Optional

from .aggregator import StatusAggregator
from .transport import MediaHandle

logger = logging.getLogger(__name__)


class CommandGateway:
    """Routes ``set_casting`` to the active media session.

    The requested value is committed to the aggregator before the device is
    told anything, so readers see the operator's intent right away. The next
    pushed media status corrects it if the device disagrees.
    """

    def __init__(
        self,
        aggregator: StatusAggregator,
        media_source: Callable[[], Optional[MediaHandle]],
    ) -> None:
        self._aggregator = aggregator
        self._media_source = media_source

    async def set_casting(self, on: bool) -> None:
        on = bool(on)
        currently_casting = self._aggregator.is_casting
        self._aggregator.set_is_casting(on)

        media = self._media_source()
        if media is None:
            logger.debug("No media session; nothing to %s", "play" if on else "stop")
            return

        if on and not currently_casting:
            logger.info("Turning on: sending play")
            await self._send(media.play, "play")
        elif not on and currently_casting:
            logger.info("Turning off: sending stop")
            await self._send(media.stop, "stop")

    @staticmethod
    async def _send(command, name: str) -> None:
        try:
            await command()
        except Exception as exc:  # noqa: BLE001
            # The next status push is authoritative; nothing to surface.
            logger.warning("Chromecast %s command failed: %s", name, exc)
