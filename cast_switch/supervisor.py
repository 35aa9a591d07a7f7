"""Session supervisor: owns the one control connection to the device.

States: DISCONNECTED → CONNECTING → CONNECTED
                 ↖_____________________↙
  Matching advertisement starts CONNECTING
  Transport up (connection + heartbeat + receiver) → CONNECTED
  Heartbeat/connection timeout or disconnect → DISCONNECTED (full reset)

Every input (advertisements, receiver status, media status, transport
events) is posted to one queue and handled strictly in arrival order by
:meth:`SessionSupervisor.run`. Handlers are the only code that replaces the
:class:`~cast_switch.models.DeviceSession` snapshot.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from dataclasses import replace
from typing import Callable, Optional

from .aggregator import StatusAggregator
from .events import (
    ConnectionClosed,
    ConnectionTimedOut,
    DeviceFound,
    DeviceStatusReceived,
    Event,
    MediaStatusReceived,
    TransportEvent,
    TransportFault,
)
from .models import (
    ApplicationInfo,
    ApplicationSession,
    ConnectionState,
    DeviceIdentity,
    DeviceSession,
    DeviceStatus,
    MediaStatus,
)
from .transport import CastConnection, ConnectionFactory, MediaHandle, TransportError

logger = logging.getLogger(__name__)

IdentityCallback = Callable[[Optional[DeviceIdentity]], None]


class SessionSupervisor:
    """Connects, watches and resets the device session.

    Parameters
    ----------
    aggregator:
        Receives media status and forced "stopped" transitions.
    connection_factory:
        ``factory(identity, sink)`` returning a fresh :class:`CastConnection`
        that reports its events to ``sink``.
    rediscover:
        Called after a failed session join to restart device discovery.

    Identity listeners registered with :meth:`on_identity_change` hear the
    connected device's identity on connect and ``None`` on reset.
    """

    def __init__(
        self,
        aggregator: StatusAggregator,
        connection_factory: ConnectionFactory,
        rediscover: Optional[Callable[[], None]] = None,
    ) -> None:
        self._aggregator = aggregator
        self._factory = connection_factory
        self._rediscover = rediscover
        self._session = DeviceSession()
        self._connection: Optional[CastConnection] = None
        self._generation = 0
        self._queue: asyncio.Queue[Event] = asyncio.Queue()
        self._running = False
        self._identity_callbacks: list[IdentityCallback] = []
        self._announced: Optional[DeviceIdentity] = None

    # ── Read-only view ────────────────────────────────────────────

    @property
    def session(self) -> DeviceSession:
        return self._session

    @property
    def state(self) -> ConnectionState:
        return self._session.state

    @property
    def identity(self) -> Optional[DeviceIdentity]:
        return self._session.identity

    @property
    def application(self) -> Optional[ApplicationSession]:
        return self._session.application

    @property
    def media(self) -> Optional[MediaHandle]:
        return self._session.media

    @property
    def generation(self) -> int:
        return self._generation

    def on_identity_change(self, callback: IdentityCallback) -> None:
        """Register ``callback(identity)`` for connected-device changes."""
        self._identity_callbacks.append(callback)

    # ── Event intake ──────────────────────────────────────────────

    def post(self, event: Event) -> None:
        """Queue an event. Must be called on the event loop thread."""
        self._queue.put_nowait(event)

    def device_found(self, identity: DeviceIdentity) -> None:
        self.post(DeviceFound(identity))

    async def run(self) -> None:
        """Consume queued events until :meth:`stop`."""
        self._running = True
        while self._running:
            event = await self._queue.get()
            try:
                await self.dispatch(event)
            except Exception:
                logger.exception("Error handling %s", type(event).__name__)

    async def process_pending(self) -> None:
        """Handle everything already queued, then return."""
        while not self._queue.empty():
            await self.dispatch(self._queue.get_nowait())

    async def stop(self) -> None:
        self._running = False
        if self._connection is not None:
            await self._connection.disconnect()
            self.device_disconnected()
        self._aggregator.cancel()

    async def dispatch(self, event: Event) -> None:
        if isinstance(event, DeviceFound):
            await self._on_device_found(event.identity)
            return

        if event.generation != self._generation or self._connection is None:
            logger.debug("Dropping stale %s", type(event).__name__)
            return

        if isinstance(event, DeviceStatusReceived):
            await self._on_device_status(event.status)
        elif isinstance(event, MediaStatusReceived):
            self._on_media_status(event)
        elif isinstance(event, ConnectionTimedOut):
            logger.debug("%s timeout reported", event.source)
            await self.device_timeout()
        elif isinstance(event, ConnectionClosed):
            self.device_disconnected()
        elif isinstance(event, TransportFault):
            logger.warning("Client error: %s", event.message)

    # ── Lifecycle paths ───────────────────────────────────────────

    async def device_timeout(self) -> None:
        """Force the channel closed, then reset like a disconnect."""
        logger.info("Chromecast connection: timeout")
        connection = self._connection
        if connection is None:
            return
        await connection.disconnect()
        self.device_disconnected()

    def device_disconnected(self) -> None:
        """Stop casting and drop every piece of per-device state."""
        logger.info("Chromecast connection: disconnected")
        self._aggregator.set_is_casting(False)
        self._close_media()
        if self._connection is not None:
            self._connection.detach()
            self._connection = None
        self._generation += 1
        self._session = DeviceSession()
        self._announce_identity()

    # ── Handlers ──────────────────────────────────────────────────

    async def _on_device_found(self, identity: DeviceIdentity) -> None:
        current = self._session
        if current.state is not ConnectionState.DISCONNECTED:
            if current.identity and current.identity.address == identity.address:
                logger.debug("Ignoring re-advertisement of %s", identity.address)
                return
            logger.info(
                "Chromecast moved from %s to %s",
                current.identity.address if current.identity else "?",
                identity.address,
            )
            if self._connection is not None:
                await self._connection.disconnect()
            self.device_disconnected()

        self._session = DeviceSession(
            state=ConnectionState.CONNECTING, identity=identity,
        )
        logger.info("Chromecast found on %s. Connecting...", identity.ip_address)
        await self._connect(identity)

    async def _connect(self, identity: DeviceIdentity) -> None:
        self._generation += 1
        generation = self._generation
        sink = functools.partial(self._post_transport_event, generation)
        connection = self._factory(identity, sink)
        self._connection = connection

        try:
            await connection.connect()
        except TransportError as exc:
            logger.warning("Chromecast connection to %s failed: %s", identity.address, exc)
            if self._connection is connection:
                connection.detach()
                self._connection = None
                self._generation += 1
                self._session = DeviceSession()
                self._announce_identity()
            return

        if generation != self._generation:
            return
        self._session = self._session.evolve(state=ConnectionState.CONNECTED)
        logger.info("Chromecast connection: connected")
        self._announce_identity()

        # The device may already be mid-session; read its status now rather
        # than waiting for the next push.
        try:
            status = await connection.get_status()
        except TransportError as exc:
            logger.warning("Initial status request failed: %s", exc)
            return
        if generation == self._generation:
            await self._on_device_status(status)

    async def _on_device_status(self, status: Optional[DeviceStatus]) -> None:
        if status is None:
            return

        app = status.current_application
        if app is not None:
            current = self._session.application
            if current is None or current.session_id != app.session_id:
                await self._start_application_session(app)
        elif self._session.application is not None or self._session.media is not None:
            logger.debug("No running application; dropping media session")
            self._close_media()
            self._session = self._session.evolve(application=None, media=None)

        if status.applications is None:
            logger.debug("Status without applications: casting stopped")
            self._aggregator.set_is_casting(False)

    async def _start_application_session(self, app: ApplicationInfo) -> None:
        self._close_media()
        application = ApplicationSession.from_application(app)
        self._session = self._session.evolve(application=application, media=None)
        logger.debug("New application session %s (%s)", application.session_id, app.display_name)

        if not application.supports_media:
            logger.debug("%s has no media channel; not joining", app.display_name or app.app_id)
            return

        generation = self._generation
        result = await self._connection.join(application)
        if generation != self._generation or self._session.application is not application:
            if result.ok:
                result.media.close()
            return

        if not result.ok:
            logger.warning(
                "Joining session %s failed: %s. Reconnecting",
                application.session_id, result.error,
            )
            await self.device_timeout()
            if self._rediscover is not None:
                self._rediscover()
            return

        media = result.media
        self._session = self._session.evolve(media=media)
        try:
            media_status = await media.fetch_status()
        except TransportError as exc:
            logger.warning("Initial media status request failed: %s", exc)
            media_status = None
        if generation != self._generation or self._session.media is not media:
            return
        self._aggregator.process_media_status(media_status)
        media.subscribe(functools.partial(
            self._post_media_status, generation, application.session_id,
        ))

    def _on_media_status(self, event: MediaStatusReceived) -> None:
        app = self._session.application
        if app is None or self._session.media is None or app.session_id != event.session_id:
            logger.debug("Dropping media status for inactive session %s", event.session_id)
            return
        self._aggregator.process_media_status(event.status)

    # ── Helpers ───────────────────────────────────────────────────

    def _post_transport_event(self, generation: int, event: TransportEvent) -> None:
        self.post(_with_generation(event, generation))

    def _post_media_status(
        self, generation: int, session_id: str, status: Optional[MediaStatus],
    ) -> None:
        self.post(MediaStatusReceived(status, session_id=session_id, generation=generation))

    def _close_media(self) -> None:
        if self._session.media is not None:
            self._session.media.close()

    def _announce_identity(self) -> None:
        session = self._session
        identity = session.identity if session.state is ConnectionState.CONNECTED else None
        if identity == self._announced:
            return
        self._announced = identity
        for callback in self._identity_callbacks:
            try:
                callback(identity)
            except Exception:
                logger.exception("Error in identity callback")


def _with_generation(event: TransportEvent, generation: int) -> TransportEvent:
    return replace(event, generation=generation)
