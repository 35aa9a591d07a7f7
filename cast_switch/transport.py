"""Control-protocol seam between the supervisor and a Cast client library.

The supervisor only talks to :class:`CastConnection` and :class:`MediaHandle`.
:mod:`cast_switch.chromecast` implements them on top of pychromecast; tests
implement them with fakes.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

from .events import TransportEvent
from .models import ApplicationSession, DeviceIdentity, DeviceStatus, MediaStatus

EventSink = Callable[[TransportEvent], None]
MediaStatusCallback = Callable[[Optional[MediaStatus]], None]


class TransportError(Exception):
    """Raised when the control channel cannot be opened or used."""


class MediaHandle:
    """An open handle on the media channel of a joined application."""

    async def play(self) -> None:
        raise NotImplementedError

    async def stop(self) -> None:
        raise NotImplementedError

    async def fetch_status(self) -> Optional[MediaStatus]:
        """Pull the current media status once."""
        raise NotImplementedError

    def subscribe(self, callback: MediaStatusCallback) -> None:
        """Forward every pushed media status to *callback* until closed."""
        raise NotImplementedError

    def close(self) -> None:
        """Detach all listeners. Idempotent."""
        raise NotImplementedError


@dataclass(frozen=True)
class JoinResult:
    media: Optional[MediaHandle] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.media is not None and self.error is None

    @classmethod
    def success(cls, media: MediaHandle) -> JoinResult:
        return cls(media=media)

    @classmethod
    def failure(cls, error: BaseException) -> JoinResult:
        return cls(error=error)


class CastConnection:
    """One control channel to one device.

    ``connect`` returns once the connection, heartbeat and receiver
    subsystems are all up, or raises :class:`TransportError`. Afterwards the
    connection reports receiver status pushes, timeouts, disconnects and
    error events to the sink it was created with.
    """

    async def connect(self) -> None:
        raise NotImplementedError

    async def get_status(self) -> Optional[DeviceStatus]:
        """Pull the current receiver status once."""
        raise NotImplementedError

    async def join(self, application: ApplicationSession) -> JoinResult:
        """Attach to the media channel of a running application."""
        raise NotImplementedError

    async def disconnect(self) -> None:
        """Close the channel and detach every listener. Idempotent."""
        raise NotImplementedError

    def detach(self) -> None:
        """Stop reporting events and release the channel without waiting.

        Used when the peer already went away. Idempotent.
        """
        raise NotImplementedError


ConnectionFactory = Callable[[DeviceIdentity, EventSink], CastConnection]
