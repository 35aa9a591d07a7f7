"""Home Assistant host-platform bridge."""

from __future__ import annotations

from .bridge import HomeAssistantBridge
from .client import HAAuthError, HAClient, HAClientError, HAConnectionError
from .websocket import HAWebSocketError, HAWebSocketListener

__all__ = [
    "HAAuthError",
    "HAClient",
    "HAClientError",
    "HAConnectionError",
    "HAWebSocketError",
    "HAWebSocketListener",
    "HomeAssistantBridge",
]
