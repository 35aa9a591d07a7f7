"""Cast device discovery over mDNS.

Browses ``_googlecast._tcp.local.`` and reports every advertisement whose
friendly name (TXT ``fn``) matches the configured name, case-insensitively.
Browsing never stops on a match: later re-advertisements are reported too,
and that is what drives reconnection after a dropped session. Without a
match the browser simply keeps running.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Iterable, Optional

from zeroconf import IPVersion, ServiceBrowser, ServiceInfo, Zeroconf

from .models import DeviceIdentity

logger = logging.getLogger(__name__)

CAST_SERVICE_TYPE = "_googlecast._tcp.local."
DEFAULT_CAST_PORT = 8009


def decode_properties(properties: Optional[dict]) -> dict[str, str]:
    """Decode a zeroconf TXT property dict into ``str → str``."""
    decoded = {}
    for k, v in (properties or {}).items():
        key = k.decode("utf-8", "replace") if isinstance(k, bytes) else str(k)
        if v is None:
            value = ""
        elif isinstance(v, bytes):
            value = v.decode("utf-8", "replace")
        else:
            value = str(v)
        decoded[key] = value
    return decoded


def pick_address(addresses: Iterable[str]) -> Optional[str]:
    """Choose one address from a resolved list.

    Duplicates are removed keeping first-seen order and the first one wins,
    so callers list their preferred family first.
    """
    seen: list[str] = []
    for addr in addresses:
        if addr and addr not in seen:
            seen.append(addr)
    return seen[0] if seen else None


def identity_from_service_info(info: ServiceInfo, device_name: str) -> Optional[DeviceIdentity]:
    """Return the device identity if *info* advertises *device_name*."""
    props = decode_properties(info.properties)
    friendly_name = props.get("fn", "")
    if not friendly_name or friendly_name.lower() != device_name.lower():
        return None

    ip = pick_address(
        info.parsed_addresses(IPVersion.V4Only) + info.parsed_addresses(IPVersion.V6Only)
    )
    if ip is None:
        logger.debug("Advertisement for %s has no address yet", friendly_name)
        return None

    return DeviceIdentity(
        name=friendly_name,
        device_type=props.get("md", ""),
        ip_address=ip,
        port=info.port or DEFAULT_CAST_PORT,
        device_id=props.get("id", ""),
    )


class DeviceDiscovery:
    """Continuously browses for one named Cast device.

    ``on_found`` is invoked on the asyncio loop, once per matching
    advertisement.
    """

    def __init__(
        self,
        device_name: str,
        on_found: Callable[[DeviceIdentity], None],
        loop: Optional[asyncio.AbstractEventLoop] = None,
        zeroconf: Optional[Zeroconf] = None,
    ) -> None:
        self.device_name = device_name
        self.on_found = on_found
        self._loop = loop
        self._zeroconf = zeroconf
        self._owns_zeroconf = zeroconf is None
        self._browser: Optional[ServiceBrowser] = None

    @property
    def running(self) -> bool:
        return self._browser is not None

    def start(self) -> None:
        if self._browser is not None:
            return
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        if self._zeroconf is None:
            self._zeroconf = Zeroconf()
        self._browser = ServiceBrowser(
            self._zeroconf, CAST_SERVICE_TYPE, _CastListener(self._on_service),
        )
        logger.info('Scanning for Chromecast device with name "%s"', self.device_name)

    def restart(self) -> None:
        """Replace the browser so cached and fresh answers are reported again."""
        if self._browser is not None:
            self._browser.cancel()
            self._browser = None
        logger.debug("Restarting mDNS browser")
        self.start()

    def stop(self) -> None:
        if self._browser is not None:
            self._browser.cancel()
            self._browser = None
        if self._zeroconf is not None and self._owns_zeroconf:
            self._zeroconf.close()
            self._zeroconf = None

    # ── Internal ───────────────────────────────────────────────────

    def _on_service(self, info: ServiceInfo) -> None:
        """Runs on the zeroconf thread."""
        identity = identity_from_service_info(info, self.device_name)
        if identity is None:
            return
        if self._loop is None or self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self._deliver, identity)

    def _deliver(self, identity: DeviceIdentity) -> None:
        try:
            self.on_found(identity)
        except Exception:
            logger.exception("Error in discovery callback")


class _CastListener:
    """Zeroconf service listener for Cast advertisements."""

    def __init__(self, callback: Callable[[ServiceInfo], None]) -> None:
        self._callback = callback

    def add_service(self, zc: Zeroconf, type_: str, name: str) -> None:
        info = zc.get_service_info(type_, name)
        if info is not None:
            self._callback(info)

    def remove_service(self, zc: Zeroconf, type_: str, name: str) -> None:
        logger.debug("Cast service removed: %s", name)

    def update_service(self, zc: Zeroconf, type_: str, name: str) -> None:
        # TXT records change whenever the running app changes.
        self.add_service(zc, type_, name)
