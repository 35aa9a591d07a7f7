"""Home Assistant REST client for the switch and sensor entities.

Only the handful of endpoints the bridge needs: read one state, write one
state, call one service. Every failure surfaces as :class:`HAClientError`
(or a subclass) so callers have one thing to catch.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

logger = logging.getLogger(__name__)


class HAClientError(Exception):
    """Base error for HA client failures."""


class HAConnectionError(HAClientError):
    """Raised when HA is network-unreachable."""


class HAAuthError(HAClientError):
    """Raised when HA rejects the token (401 or 403)."""


class HAClient:
    """Async Home Assistant REST client over one :class:`httpx.AsyncClient`.

    ``transport`` is handed to httpx unchanged; tests pass an
    ``httpx.MockTransport``.
    """

    def __init__(
        self,
        base_url: str,
        token: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._http = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            headers={"Authorization": f"Bearer {token}"},
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "HAClient":
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.aclose()

    async def health(self) -> bool:
        """True when ``GET /api/`` answers."""
        try:
            await self._request("GET", "/api/")
        except HAClientError:
            return False
        return True

    async def get_state(self, entity_id: str) -> dict | None:
        """Current state object of *entity_id*, or ``None`` if HA has no such entity."""
        result = await self._request("GET", f"/api/states/{entity_id}", missing_ok=True)
        return result if isinstance(result, dict) else None

    async def set_state(self, entity_id: str, state: str, attributes: dict | None = None) -> dict:
        """Create or overwrite the state of *entity_id*."""
        result = await self._request(
            "POST", f"/api/states/{entity_id}",
            json={"state": state, "attributes": attributes or {}},
        )
        return result if isinstance(result, dict) else {}

    async def call_service(self, domain: str, service: str, data: dict) -> list:
        """Call ``domain.service``; returns the states HA reports as changed."""
        result = await self._request("POST", f"/api/services/{domain}/{service}", json=data)
        return result if isinstance(result, list) else []

    async def _request(
        self,
        method: str,
        path: str,
        json: Any = None,
        missing_ok: bool = False,
    ) -> Any:
        try:
            response = await self._http.request(method, path, json=json)
        except (httpx.TimeoutException, httpx.NetworkError) as exc:
            raise HAConnectionError(f"Cannot reach HA at {self.base_url}: {exc}") from exc

        if response.status_code in (401, 403):
            raise HAAuthError(f"HA returned {response.status_code}, check your token")
        if missing_ok and response.status_code == 404:
            return None
        if response.is_error:
            raise HAClientError(f"{method} {path} failed with HTTP {response.status_code}")
        logger.debug("%s %s -> %d", method, path, response.status_code)
        return response.json() if response.content else None
