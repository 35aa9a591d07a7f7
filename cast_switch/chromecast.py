"""pychromecast implementation of the control-protocol seam.

pychromecast runs its socket client (TLS channel, heartbeat, receiver and
media controllers) on its own thread. Every callback it makes is handed to
the asyncio loop with ``call_soon_threadsafe``; every blocking call runs in
the loop's default executor.

Receiver status is read from the raw RECEIVER_STATUS message rather than
from pychromecast's parsed ``CastStatus``, which reports a missing and an
empty ``applications`` list the same way.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import threading
import time
import uuid
from typing import Any, Callable, Optional

import pychromecast
from pychromecast.const import MESSAGE_TYPE
from pychromecast.controllers import BaseController
from pychromecast.controllers.media import MediaStatusListener
from pychromecast.error import PyChromecastError
from pychromecast.socket_client import (
    CONNECTION_STATUS_CONNECTED,
    CONNECTION_STATUS_DISCONNECTED,
    CONNECTION_STATUS_FAILED,
    CONNECTION_STATUS_FAILED_RESOLVE,
    CONNECTION_STATUS_LOST,
    ConnectionStatusListener,
)

from .events import (
    TIMEOUT_CONNECTION,
    TIMEOUT_HEARTBEAT,
    ConnectionClosed,
    ConnectionTimedOut,
    DeviceStatusReceived,
    TransportFault,
)
from .models import (
    MEDIA_NAMESPACE,
    ApplicationSession,
    DeviceIdentity,
    DeviceStatus,
    MediaStatus,
)
from .transport import (
    CastConnection,
    ConnectionFactory,
    EventSink,
    JoinResult,
    MediaHandle,
    MediaStatusCallback,
    TransportError,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
JOIN_TIMEOUT = 5.0
JOIN_POLL_INTERVAL = 0.05

RECEIVER_NAMESPACE = "urn:x-cast:com.google.cast.receiver"
TYPE_RECEIVER_STATUS = "RECEIVER_STATUS"


# ── Conversions ───────────────────────────────────────────────────


def media_status_from(status: Any) -> Optional[MediaStatus]:
    """Convert a pychromecast ``MediaStatus``."""
    if status is None:
        return None
    return MediaStatus(player_state=getattr(status, "player_state", None))


def _parse_uuid(device_id: str) -> Optional[uuid.UUID]:
    try:
        return uuid.UUID(device_id)
    except (TypeError, ValueError):
        return None


def _request_and_wait(request: Callable[..., Any], timeout: float) -> None:
    """Send a status request and block until its response (or timeout)."""
    done = threading.Event()
    request(callback_function=lambda *_: done.set())
    if not done.wait(timeout):
        logger.debug("Status request timed out after %ss", timeout)


def _wait_until(predicate: Callable[[], bool], timeout: float) -> bool:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() >= deadline:
            return False
        time.sleep(JOIN_POLL_INTERVAL)
    return True


def _error_text(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


class _LoopForwarder:
    """Hands events from a library thread to a callback on the loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop, callback: Callable[[Any], None]):
        self._loop = loop
        self._callback: Optional[Callable[[Any], None]] = callback

    @property
    def attached(self) -> bool:
        return self._callback is not None

    def detach(self) -> None:
        self._callback = None

    def emit(self, item: Any) -> None:
        if self._callback is None or self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self._deliver, item)

    def _deliver(self, item: Any) -> None:
        # Re-check on the loop: detach may have happened in between.
        callback = self._callback
        if callback is not None:
            callback(item)


# ── Listeners registered once per connection ─────────────────────


class _ReceiverStatusTap(BaseController):
    """Second handler on the receiver namespace that keeps the raw status.

    Pushes every RECEIVER_STATUS to the forwarder and remembers the last
    one for status pulls.
    """

    def __init__(self, forwarder: _LoopForwarder):
        super().__init__(RECEIVER_NAMESPACE)
        self._forwarder = forwarder
        self._received = threading.Event()
        self.latest: Optional[DeviceStatus] = None

    def receive_message(self, _message, data: dict) -> bool:
        if data.get(MESSAGE_TYPE) != TYPE_RECEIVER_STATUS:
            return False
        status = DeviceStatus.from_dict(data.get("status"))
        if status is None:
            logger.debug("Ignoring malformed receiver status: %s", data)
            return False
        self.latest = status
        self._received.set()
        self._forwarder.emit(DeviceStatusReceived(status))
        # Leave the message to pychromecast's own receiver controller too.
        return False

    def refresh(self, request: Callable[[], Any], timeout: float) -> Optional[DeviceStatus]:
        """Request a status and block until the next one arrives (or timeout)."""
        self._received.clear()
        request()
        if not self._received.wait(timeout):
            logger.debug("Receiver status request timed out after %ss", timeout)
        return self.latest


class _ConnectionListener(ConnectionStatusListener):
    """Maps socket connection status onto supervisor events."""

    def __init__(self, forwarder: _LoopForwarder):
        self._forwarder = forwarder

    def new_connection_status(self, status) -> None:
        state = status.status
        if state == CONNECTION_STATUS_LOST:
            self._forwarder.emit(ConnectionTimedOut(TIMEOUT_HEARTBEAT))
        elif state == CONNECTION_STATUS_FAILED:
            self._forwarder.emit(ConnectionTimedOut(TIMEOUT_CONNECTION))
        elif state == CONNECTION_STATUS_DISCONNECTED:
            self._forwarder.emit(ConnectionClosed())
        elif state == CONNECTION_STATUS_FAILED_RESOLVE:
            self._forwarder.emit(TransportFault(f"cannot resolve {status.address}"))
        elif state == CONNECTION_STATUS_CONNECTED:
            logger.debug("Socket connected to %s", status.address)


class _MediaRouter(MediaStatusListener):
    """The one media status listener of a connection.

    pychromecast cannot unregister media listeners, so a single router is
    registered per connection and forwards to whichever handle is subscribed.
    """

    def __init__(self) -> None:
        self._forwarder: Optional[_LoopForwarder] = None

    @property
    def forwarder(self) -> Optional[_LoopForwarder]:
        return self._forwarder

    def attach(self, forwarder: _LoopForwarder) -> None:
        if self._forwarder is not None:
            self._forwarder.detach()
        self._forwarder = forwarder

    def release(self, forwarder: _LoopForwarder) -> None:
        forwarder.detach()
        if self._forwarder is forwarder:
            self._forwarder = None

    def new_media_status(self, status) -> None:
        forwarder = self._forwarder
        if forwarder is not None:
            forwarder.emit(media_status_from(status))

    def load_media_failed(self, *args) -> None:
        logger.debug("Load media failed: %s", args)


# ── Media ─────────────────────────────────────────────────────────


class PyChromecastMedia(MediaHandle):
    """Media handle over a pychromecast ``MediaController``."""

    def __init__(
        self,
        controller: Any,
        router: _MediaRouter,
        loop: asyncio.AbstractEventLoop,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self._controller = controller
        self._router = router
        self._loop = loop
        self._timeout = timeout
        self._forwarder: Optional[_LoopForwarder] = None

    async def play(self) -> None:
        await self._call(self._controller.play)

    async def stop(self) -> None:
        await self._call(self._controller.stop)

    async def fetch_status(self) -> Optional[MediaStatus]:
        await self._call(
            functools.partial(_request_and_wait, self._controller.update_status, self._timeout)
        )
        return media_status_from(self._controller.status)

    def subscribe(self, callback: MediaStatusCallback) -> None:
        self.close()
        self._forwarder = _LoopForwarder(self._loop, callback)
        self._router.attach(self._forwarder)

    def close(self) -> None:
        if self._forwarder is not None:
            self._router.release(self._forwarder)
            self._forwarder = None

    async def _call(self, func: Callable[[], Any]) -> Any:
        try:
            return await self._loop.run_in_executor(None, func)
        except PyChromecastError as exc:
            raise TransportError(_error_text(exc)) from exc


# ── Connection ────────────────────────────────────────────────────


class PyChromecastConnection(CastConnection):
    """Control channel to one device via pychromecast."""

    def __init__(
        self,
        identity: DeviceIdentity,
        sink: EventSink,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.identity = identity
        self._sink = sink
        self._timeout = timeout
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._forwarder: Optional[_LoopForwarder] = None
        self._receiver_tap: Optional[_ReceiverStatusTap] = None
        self._media_router: Optional[_MediaRouter] = None
        self._cast: Any = None

    async def connect(self) -> None:
        self._loop = asyncio.get_running_loop()
        self._forwarder = _LoopForwarder(self._loop, self._sink)
        try:
            self._cast = await self._loop.run_in_executor(None, self._blocking_connect)
        except TransportError:
            self._forwarder.detach()
            raise
        except PyChromecastError as exc:
            self._forwarder.detach()
            raise TransportError(_error_text(exc)) from exc

    async def get_status(self) -> Optional[DeviceStatus]:
        cast = self._require_cast()
        receiver = cast.socket_client.receiver_controller
        try:
            return await self._loop.run_in_executor(
                None,
                functools.partial(self._receiver_tap.refresh, receiver.update_status, self._timeout),
            )
        except PyChromecastError as exc:
            raise TransportError(_error_text(exc)) from exc

    async def join(self, application: ApplicationSession) -> JoinResult:
        cast = self._cast
        if cast is None or not cast.socket_client.is_connected:
            return JoinResult.failure(TransportError("not connected"))
        if not application.supports_media:
            return JoinResult.failure(
                TransportError(f"session {application.session_id} has no media channel")
            )

        logger.debug(
            "Joining %s (transport %s)", application.session_id, application.transport_id,
        )
        timeout = min(self._timeout, JOIN_TIMEOUT)
        try:
            attached = await self._loop.run_in_executor(
                None,
                functools.partial(_wait_until, functools.partial(
                    self._media_channel_open, cast, application,
                ), timeout),
            )
            controller = cast.media_controller
        except PyChromecastError as exc:
            return JoinResult.failure(exc)
        if not attached:
            return JoinResult.failure(TransportError(
                f"media channel for session {application.session_id} "
                f"did not open within {timeout}s"
            ))
        return JoinResult.success(
            PyChromecastMedia(controller, self._media_router, self._loop, self._timeout)
        )

    async def disconnect(self) -> None:
        cast = self._release()
        if cast is not None:
            await self._loop.run_in_executor(
                None, functools.partial(cast.disconnect, timeout=self._timeout),
            )

    def detach(self) -> None:
        cast = self._release()
        if cast is not None and self._loop is not None and not self._loop.is_closed():
            self._loop.run_in_executor(None, functools.partial(cast.disconnect, timeout=0))

    # ── Internal ───────────────────────────────────────────────────

    def _blocking_connect(self) -> Any:
        identity = self.identity
        cast = pychromecast.get_chromecast_from_host(
            (
                identity.ip_address,
                identity.port,
                _parse_uuid(identity.device_id),
                identity.device_type or None,
                identity.name,
            ),
            tries=1,
            timeout=self._timeout,
        )
        self._receiver_tap = _ReceiverStatusTap(self._forwarder)
        self._media_router = _MediaRouter()
        cast.register_handler(self._receiver_tap)
        cast.register_connection_listener(_ConnectionListener(self._forwarder))
        cast.media_controller.register_status_listener(self._media_router)
        cast.wait(timeout=self._timeout)

        client = cast.socket_client
        if not (
            client.is_connected
            and client.heartbeat_controller is not None
            and client.receiver_controller is not None
        ):
            cast.disconnect(timeout=0)
            raise TransportError(f"{identity.address} did not finish connecting")
        return cast

    @staticmethod
    def _media_channel_open(cast: Any, application: ApplicationSession) -> bool:
        """True once the socket client follows *application* on a media channel."""
        client = cast.socket_client
        return (
            client.session_id == application.session_id
            and client.destination_id is not None
            and MEDIA_NAMESPACE in (client.app_namespaces or ())
        )

    def _release(self) -> Any:
        if self._forwarder is not None:
            self._forwarder.detach()
        if self._media_router is not None and self._media_router.forwarder is not None:
            self._media_router.release(self._media_router.forwarder)
        cast, self._cast = self._cast, None
        return cast

    def _require_cast(self) -> Any:
        if self._cast is None:
            raise TransportError("not connected")
        return self._cast


def connection_factory(timeout: float = DEFAULT_TIMEOUT) -> ConnectionFactory:
    """Build a factory creating :class:`PyChromecastConnection` objects."""
    return functools.partial(PyChromecastConnection, timeout=timeout)
