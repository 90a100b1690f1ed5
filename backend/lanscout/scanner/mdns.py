"""
mDNS/DNS-SD service browsing using the zeroconf library.

Browses a fixed list of service types for a bounded window, then resolves
every discovered instance to its IPv4 address.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from zeroconf import IPVersion, ServiceStateChange
from zeroconf.asyncio import AsyncServiceBrowser, AsyncServiceInfo, AsyncZeroconf

from .cancellation import CancellationToken

logger = logging.getLogger(__name__)

SERVICE_TYPES = [
    "_http._tcp.local.",
    "_https._tcp.local.",
    "_workstation._tcp.local.",
    "_smb._tcp.local.",
    "_afpovertcp._tcp.local.",
    "_airplay._tcp.local.",
    "_raop._tcp.local.",
    "_googlecast._tcp.local.",
    "_spotify-connect._tcp.local.",
    "_printer._tcp.local.",
    "_ipp._tcp.local.",
    "_ssh._tcp.local.",
    "_sftp-ssh._tcp.local.",
    "_homekit._tcp.local.",
]


@dataclass(frozen=True)
class ResolvedService:
    """A service instance resolved to a host address."""
    ip_address: str
    name: str
    service_type: str
    server: Optional[str] = None

    @property
    def instance_name(self) -> str:
        """'Living Room._airplay._tcp.local.' -> 'Living Room'."""
        suffix = "." + self.service_type
        if self.name.endswith(suffix):
            return self.name[: -len(suffix)]
        return self.name

    @property
    def friendly_hostname(self) -> Optional[str]:
        name = self.instance_name.strip()
        if name:
            return name
        if self.server:
            host = self.server.rstrip(".")
            if host.endswith(".local"):
                host = host[: -len(".local")]
            return host or None
        return None


class MdnsBrowser:
    """Bounded-window DNS-SD browser."""

    def __init__(self, resolve_timeout: float = 0.5, zeroconf_factory=None):
        self.resolve_timeout = resolve_timeout
        self._zeroconf_factory = zeroconf_factory or (lambda: AsyncZeroconf(ip_version=IPVersion.V4Only))

    async def browse(
        self,
        service_types: Sequence[str] = SERVICE_TYPES,
        window: float = 2.0,
        token: Optional[CancellationToken] = None,
    ) -> list[ResolvedService]:
        token = token or CancellationToken()
        found: list[tuple[str, str]] = []

        def on_service_state_change(zeroconf, service_type, name, state_change):
            if state_change is ServiceStateChange.Added and (service_type, name) not in found:
                found.append((service_type, name))

        aiozc = self._zeroconf_factory()
        browsers = []
        try:
            for service_type in service_types:
                try:
                    browsers.append(AsyncServiceBrowser(
                        aiozc.zeroconf, [service_type], handlers=[on_service_state_change]
                    ))
                except Exception as e:
                    # Unsupported type or browser registration failure
                    logger.debug("mDNS browse for %s failed: %s", service_type, e)

            await token.sleep(window)

            for browser in browsers:
                await browser.async_cancel()
            browsers = []

            results = await token.guard(asyncio.gather(
                *(self._resolve(aiozc, service_type, name) for service_type, name in found),
                return_exceptions=True,
            ))
        finally:
            for browser in browsers:
                try:
                    await browser.async_cancel()
                except Exception as e:
                    logger.debug("mDNS browser cancel failed: %s", e)
            await aiozc.async_close()

        services: list[ResolvedService] = []
        for result in results:
            if isinstance(result, Exception):
                logger.debug("mDNS resolve error: %s", result)
                continue
            services.extend(result)
        return services

    async def _resolve(self, aiozc: AsyncZeroconf, service_type: str, name: str) -> list[ResolvedService]:
        info = AsyncServiceInfo(service_type, name)
        if not await info.async_request(aiozc.zeroconf, int(self.resolve_timeout * 1000)):
            return []

        return [
            ResolvedService(ip_address=ip, name=name, service_type=service_type, server=info.server)
            for ip in info.parsed_addresses(IPVersion.V4Only)
        ]
