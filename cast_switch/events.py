"""Inbound events consumed by the session supervisor, in arrival order.

Transport-originated events carry the connection ``generation`` they were
produced under; the supervisor drops anything from a torn-down connection.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .models import DeviceIdentity, DeviceStatus, MediaStatus

TIMEOUT_CONNECTION = "connection"
TIMEOUT_HEARTBEAT = "heartbeat"


@dataclass(frozen=True)
class DeviceFound:
    identity: DeviceIdentity


@dataclass(frozen=True)
class DeviceStatusReceived:
    status: Optional[DeviceStatus]
    generation: int = 0


@dataclass(frozen=True)
class MediaStatusReceived:
    status: Optional[MediaStatus]
    session_id: str = ""
    generation: int = 0


@dataclass(frozen=True)
class ConnectionTimedOut:
    source: str = TIMEOUT_CONNECTION
    generation: int = 0


@dataclass(frozen=True)
class ConnectionClosed:
    generation: int = 0


@dataclass(frozen=True)
class TransportFault:
    message: str
    generation: int = 0


TransportEvent = (
    DeviceStatusReceived | MediaStatusReceived | ConnectionTimedOut
    | ConnectionClosed | TransportFault
)
Event = DeviceFound | TransportEvent
