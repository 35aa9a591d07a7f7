"""Home Assistant WebSocket listener.

Subscribes to ``state_changed`` and reports changes of a few watched
entities. The bridge uses it to hear user toggles of the switch entity.

Uses :mod:`aiohttp` for the WebSocket transport. Any drop is followed by a
reconnect after 1s, doubling up to 60s; a full connect/auth/read cycle
resets the delay.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Iterable
from urllib.parse import urlsplit

import aiohttp

logger = logging.getLogger(__name__)

RECONNECT_MIN = 1
RECONNECT_MAX = 60
HEARTBEAT = 30.0

StateCallback = Callable[[str, dict, "dict | None"], None]

_WS_SCHEMES = {"http": "ws", "https": "wss", "ws": "ws", "wss": "wss"}


class HAWebSocketError(Exception):
    """Raised on unrecoverable WebSocket errors (e.g. bad auth)."""


class HAWebSocketListener:
    """Watches ``state_changed`` events for a set of entities.

    Parameters
    ----------
    base_url:
        HA base URL (e.g. ``http://homeassistant.local:8123``).
    token:
        Long-lived access token.
    entity_ids:
        Entities to report. Empty means every entity.
    """

    def __init__(self, base_url: str, token: str, entity_ids: Iterable[str] = ()) -> None:
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._entity_ids = frozenset(entity_ids)
        self._callbacks: list[StateCallback] = []
        self._connected = False
        self._running = False
        self._session: aiohttp.ClientSession | None = None
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._task: asyncio.Task | None = None
        self._next_request = 1

    @property
    def connected(self) -> bool:
        """``True`` while authenticated and subscribed."""
        return self._connected

    def on_state_change(self, callback: StateCallback) -> None:
        """Register ``callback(entity_id, new_state, old_state)``."""
        self._callbacks.append(callback)

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._task = asyncio.get_running_loop().create_task(self._run_loop())

    async def stop(self) -> None:
        self._running = False
        if self._ws is not None and not self._ws.closed:
            await self._ws.close()
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except (asyncio.CancelledError, HAWebSocketError):
                pass
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
        self._connected = False

    # ── Connection loop ───────────────────────────────────────────

    async def _run_loop(self) -> None:
        delay = RECONNECT_MIN
        try:
            while self._running:
                try:
                    await self._connect_and_listen()
                except HAWebSocketError:
                    logger.error("HA WebSocket authentication failed; switch commands disabled")
                    self._running = False
                    raise
                except (aiohttp.ClientError, OSError, asyncio.TimeoutError) as exc:
                    logger.warning("HA WebSocket dropped (%s); reconnecting in %ss", exc, delay)
                    failed = True
                else:
                    failed = False
                self._connected = False
                if not self._running:
                    break
                if not failed:
                    delay = RECONNECT_MIN
                await asyncio.sleep(delay)
                delay = min(delay * 2, RECONNECT_MAX)
        except asyncio.CancelledError:
            pass
        finally:
            self._connected = False

    async def _connect_and_listen(self) -> None:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()

        async with self._session.ws_connect(self._ws_url(), heartbeat=HEARTBEAT) as ws:
            self._ws = ws
            await self._authenticate(ws)
            self._next_request = 1
            await ws.send_json({
                "id": self._request_id(),
                "type": "subscribe_events",
                "event_type": "state_changed",
            })
            self._connected = True
            logger.info("HA WebSocket subscribed to state changes")

            async for msg in ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    self._handle_message(msg.json())
                elif msg.type in (aiohttp.WSMsgType.CLOSED, aiohttp.WSMsgType.ERROR):
                    break
        self._ws = None

    async def _authenticate(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        greeting = (await ws.receive_json()).get("type")
        if greeting != "auth_required":
            raise HAWebSocketError(f"Expected auth_required, got {greeting}")

        await ws.send_json({"type": "auth", "access_token": self._token})

        outcome = (await ws.receive_json()).get("type")
        if outcome == "auth_ok":
            return
        if outcome == "auth_invalid":
            raise HAWebSocketError("HA WebSocket authentication failed, check token")
        raise HAWebSocketError(f"Unexpected auth response: {outcome}")

    def _request_id(self) -> int:
        request_id = self._next_request
        self._next_request += 1
        return request_id

    # ── Events ────────────────────────────────────────────────────

    def _handle_message(self, message: dict) -> None:
        if message.get("type") != "event":
            return
        data = message.get("event", {}).get("data", {})
        entity_id = data.get("entity_id")
        new_state = data.get("new_state")
        if not entity_id or new_state is None:
            return  # entity removed
        if self._entity_ids and entity_id not in self._entity_ids:
            return
        self._dispatch(entity_id, new_state, data.get("old_state"))

    def _dispatch(self, entity_id: str, new_state: dict, old_state: dict | None) -> None:
        for callback in self._callbacks:
            try:
                callback(entity_id, new_state, old_state)
            except Exception:
                logger.exception("Error in state-change callback for %s", entity_id)

    def _ws_url(self) -> str:
        url = self._base_url if "://" in self._base_url else f"http://{self._base_url}"
        parts = urlsplit(url)
        scheme = _WS_SCHEMES.get(parts.scheme, "ws")
        return f"{scheme}://{parts.netloc}{parts.path.rstrip('/')}/api/websocket"
