"""Value types shared by discovery, the session supervisor and the aggregator.

Everything here is immutable. Per-device state is replaced wholesale by
building a new value and swapping it in, never patched field by field.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field, replace
from typing import Any, Optional

MEDIA_NAMESPACE = "urn:x-cast:com.google.cast.media"

PLAYER_STATE_PLAYING = "PLAYING"
PLAYER_STATE_BUFFERING = "BUFFERING"
PLAYER_STATE_PAUSED = "PAUSED"
PLAYER_STATE_IDLE = "IDLE"
PLAYER_STATE_UNKNOWN = "UNKNOWN"

CASTING_PLAYER_STATES = frozenset({PLAYER_STATE_PLAYING, PLAYER_STATE_BUFFERING})


class ConnectionState(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass(frozen=True)
class DeviceIdentity:
    """A Cast device resolved from one matching advertisement."""

    name: str
    device_type: str
    ip_address: str
    port: int
    device_id: str

    @property
    def address(self) -> str:
        return f"{self.ip_address}:{self.port}"


@dataclass(frozen=True)
class ApplicationInfo:
    """One entry of the ``applications`` list in a receiver status."""

    app_id: str
    session_id: str
    display_name: str = ""
    namespaces: tuple[str, ...] = ()

    @property
    def supports_media(self) -> bool:
        # Unknown namespaces: assume the media channel is there.
        return not self.namespaces or MEDIA_NAMESPACE in self.namespaces


@dataclass(frozen=True)
class ApplicationSession:
    """The receiver application currently being monitored.

    ``transport_id`` always equals ``session_id``: group speakers may report a
    status without a transport id, and the session id addresses the same
    receiver channel.
    """

    session_id: str
    app_id: str = ""
    display_name: str = ""
    namespaces: tuple[str, ...] = ()
    transport_id: str = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "transport_id", self.session_id)

    @classmethod
    def from_application(cls, app: ApplicationInfo) -> ApplicationSession:
        return cls(
            session_id=app.session_id,
            app_id=app.app_id,
            display_name=app.display_name,
            namespaces=app.namespaces,
        )

    @property
    def supports_media(self) -> bool:
        return not self.namespaces or MEDIA_NAMESPACE in self.namespaces


@dataclass(frozen=True)
class DeviceStatus:
    """Receiver status.

    ``applications is None`` means the payload carried no applications field
    at all, which the device sends when casting stops. An empty tuple means
    the field was present but listed nothing.
    """

    applications: Optional[tuple[ApplicationInfo, ...]] = None

    @property
    def current_application(self) -> Optional[ApplicationInfo]:
        if self.applications:
            return self.applications[0]
        return None

    @classmethod
    def from_dict(cls, data: Any) -> Optional[DeviceStatus]:
        """Build from the ``status`` object of a RECEIVER_STATUS message.

        Returns ``None`` if the payload is malformed.
        """
        if not isinstance(data, dict):
            return None
        raw_apps = data.get("applications")
        if raw_apps is None:
            return cls(applications=None)
        if not isinstance(raw_apps, list):
            return None
        apps = []
        for raw in raw_apps:
            if not isinstance(raw, dict) or not raw.get("sessionId"):
                continue
            apps.append(ApplicationInfo(
                app_id=str(raw.get("appId", "")),
                session_id=str(raw["sessionId"]),
                display_name=str(raw.get("displayName", "")),
                namespaces=tuple(
                    ns["name"] for ns in raw.get("namespaces", [])
                    if isinstance(ns, dict) and "name" in ns
                ),
            ))
        return cls(applications=tuple(apps))


@dataclass(frozen=True)
class MediaStatus:
    player_state: Optional[str] = None

    @property
    def is_casting(self) -> bool:
        return self.player_state in CASTING_PLAYER_STATES


@dataclass(frozen=True)
class DeviceSession:
    """Snapshot of everything the supervisor knows about its one device.

    ``media`` is the open media handle for ``application``; it is only ever
    set together with (or after) the application it belongs to.
    """

    state: ConnectionState = ConnectionState.DISCONNECTED
    identity: Optional[DeviceIdentity] = None
    application: Optional[ApplicationSession] = None
    media: Any = None

    def evolve(self, **changes: Any) -> DeviceSession:
        return replace(self, **changes)
