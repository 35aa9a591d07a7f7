"""Status aggregator: one "is casting" boolean from many status events.

Two signals are derived:

  casting_on          follows every transition at once
  streaming_detected  turns on at once, turns off only after
                      ``switch_off_delay`` seconds without a new "on"

A brief pause (track change, ad break) therefore never flickers the
streaming signal when a delay is configured.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional

from .models import MediaStatus

logger = logging.getLogger(__name__)

PROP_CASTING_ON = "casting_on"
PROP_STREAMING_DETECTED = "streaming_detected"

ChangeCallback = Callable[[str, bool], None]


class StatusAggregator:
    """Sole writer of the casting state.

    Parameters
    ----------
    switch_off_delay:
        Seconds to hold ``streaming_detected`` after casting stops. ``0``
        updates it synchronously.
    scheduler:
        Anything with ``call_later(delay, callback)`` returning a handle
        with ``cancel()``. Defaults to the running asyncio loop.
    """

    def __init__(self, switch_off_delay: float = 0.0, scheduler: Any = None) -> None:
        if switch_off_delay < 0:
            raise ValueError("switch_off_delay must be non-negative")
        self.switch_off_delay = switch_off_delay
        self._scheduler = scheduler
        self._casting = False
        self._streaming = False
        self._off_timer: Optional[Any] = None
        self._callbacks: list[ChangeCallback] = []

    @property
    def is_casting(self) -> bool:
        return self._casting

    @property
    def streaming_detected(self) -> bool:
        return self._streaming

    @property
    def off_pending(self) -> bool:
        return self._off_timer is not None

    def on_change(self, callback: ChangeCallback) -> None:
        """Register ``callback(property_name, value)`` for committed changes."""
        self._callbacks.append(callback)

    def set_is_casting(self, value: bool) -> None:
        value = bool(value)
        if value == self._casting:
            return

        self._casting = value
        logger.info("Chromecast is now %s", "playing" if value else "stopped")
        self._notify(PROP_CASTING_ON, value)

        # Any transition supersedes a pending off.
        self._cancel_off_timer()
        if not value and self.switch_off_delay:
            self._off_timer = self._get_scheduler().call_later(
                self.switch_off_delay, self._delayed_off,
            )
        else:
            self._set_streaming(value)

    def process_media_status(self, status: Optional[MediaStatus]) -> None:
        """Map a media player state onto the casting boolean.

        Statuses without a player state are ignored.
        """
        if status is None or not getattr(status, "player_state", None):
            return
        self.set_is_casting(status.is_casting)

    def cancel(self) -> None:
        """Drop a pending delayed off without applying it."""
        self._cancel_off_timer()

    # ── Internal ──────────────────────────────────────────────────

    def _delayed_off(self) -> None:
        self._off_timer = None
        self._set_streaming(self._casting)

    def _set_streaming(self, value: bool) -> None:
        if value == self._streaming:
            return
        self._streaming = value
        logger.info(
            "Streaming %s", "detected" if value else "no longer detected",
        )
        self._notify(PROP_STREAMING_DETECTED, value)

    def _cancel_off_timer(self) -> None:
        if self._off_timer is not None:
            self._off_timer.cancel()
            self._off_timer = None

    def _get_scheduler(self) -> Any:
        if self._scheduler is None:
            return asyncio.get_running_loop()
        return self._scheduler

    def _notify(self, name: str, value: bool) -> None:
        for cb in self._callbacks:
            try:
                cb(name, value)
            except Exception:
                logger.exception("Error in %s change callback", name)
