"""
SSDP/UPnP discovery: one multicast M-SEARCH, then collect responses.
"""

import asyncio
import logging
import socket
import time
import xml.etree.ElementTree as ET
from typing import Optional

import aiohttp

from .cancellation import CancellationToken
from .models import UpnpInfo

logger = logging.getLogger(__name__)

SSDP_ADDR = "239.255.255.250"
SSDP_PORT = 1900

UPNP_DEVICE_NS = "{urn:schemas-upnp-org:device-1-0}"


def build_msearch(mx: int = 2, search_target: str = "ssdp:all") -> bytes:
    return (
        'M-SEARCH * HTTP/1.1\r\n'
        f'HOST: {SSDP_ADDR}:{SSDP_PORT}\r\n'
        'MAN: "ssdp:discover"\r\n'
        f'MX: {mx}\r\n'
        f'ST: {search_target}\r\n'
        '\r\n'
    ).encode()


def parse_ssdp_headers(text: str) -> dict[str, str]:
    """Header block to a dict keyed by upper-cased header name."""
    headers = {}
    for line in text.splitlines():
        if ':' in line:
            key, value = line.split(':', 1)
            headers[key.strip().upper()] = value.strip()
    return headers


def upnp_info_from_headers(headers: dict[str, str]) -> UpnpInfo:
    """Device type, description URL and manufacturer string of a response."""
    return UpnpInfo(
        device_type=headers.get("ST") or headers.get("NT") or None,
        location_url=headers.get("LOCATION") or None,
        manufacturer=headers.get("SERVER") or None,
        server=headers.get("SERVER") or None,
    )


def parse_description(xml_text: str) -> Optional[UpnpInfo]:
    """Parse a UPnP device description document."""
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as e:
        logger.debug("Invalid UPnP description: %s", e)
        return None

    device = root.find(f'.//{UPNP_DEVICE_NS}device')
    if device is None:
        return None

    def text(name: str) -> Optional[str]:
        elem = device.find(f'{UPNP_DEVICE_NS}{name}')
        if elem is not None and elem.text and elem.text.strip():
            return elem.text.strip()
        return None

    return UpnpInfo(
        friendly_name=text('friendlyName'),
        manufacturer=text('manufacturer'),
        model_name=text('modelName'),
        model_number=text('modelNumber'),
        device_type=text('deviceType'),
        serial_number=text('serialNumber'),
    )


async def fetch_description(session: aiohttp.ClientSession, url: str) -> Optional[UpnpInfo]:
    """Fetch and parse the description document at ``url``."""
    try:
        async with session.get(url) as response:
            if response.status != 200:
                return None
            return parse_description(await response.text())
    except (aiohttp.ClientError, asyncio.TimeoutError, UnicodeDecodeError) as e:
        logger.debug("UPnP description fetch from %s failed: %s", url, e)
        return None


class SSDPProtocol(asyncio.DatagramProtocol):
    """Collects (ip, text) for every datagram received."""

    def __init__(self):
        self.responses: list[tuple[str, str]] = []

    def datagram_received(self, data: bytes, addr: tuple):
        self.responses.append((addr[0], data.decode('utf-8', errors='replace')))

    def error_received(self, exc: Exception):
        logger.debug("SSDP socket error: %s", exc)


class SsdpListener:
    """Sends one M-SEARCH and gathers responses for a bounded window."""

    def __init__(self, mx: int = 2):
        self.mx = mx

    async def discover(
        self,
        window: float = 1.5,
        token: Optional[CancellationToken] = None,
    ) -> list[tuple[str, str]]:
        token = token or CancellationToken()
        loop = asyncio.get_running_loop()

        transport, protocol = await loop.create_datagram_endpoint(
            SSDPProtocol,
            local_addr=('0.0.0.0', 0),
            family=socket.AF_INET
        )
        try:
            transport.sendto(build_msearch(self.mx), (SSDP_ADDR, SSDP_PORT))
            await token.sleep(window)
            return list(protocol.responses)
        finally:
            transport.close()


async def enrich_with_descriptions(
    infos: dict[str, UpnpInfo],
    timeout: float = 2.0,
) -> dict[str, UpnpInfo]:
    """Fetch each distinct LOCATION once and merge the description into ``infos``."""
    locations = {info.location_url for info in infos.values() if info.location_url}
    if not locations:
        return infos

    started = time.monotonic()
    async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=timeout)) as session:
        urls = sorted(locations)
        results = await asyncio.gather(*(fetch_description(session, url) for url in urls))
    descriptions = dict(zip(urls, results))
    logger.debug("Fetched %d UPnP descriptions in %.2fs", len(urls), time.monotonic() - started)

    enriched = {}
    for ip, info in infos.items():
        description = descriptions.get(info.location_url) if info.location_url else None
        enriched[ip] = info.merged_with(description)
    return enriched
