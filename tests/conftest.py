from __future__ import annotations

import asyncio

import pytest

from lanscout.core.config import Settings, get_settings
from lanscout.scanner.models import NetworkContext

ARP_TABLE = """\
IP address       HW type     Flags       HW address            Mask     Device
192.168.1.1      0x1         0x2         b8:27:eb:00:00:01     *        wlan0
192.168.1.20     0x1         0x2         00:17:88:aa:bb:cc     *        wlan0
192.168.1.77     0x1         0x0         00:00:00:00:00:00     *        wlan0
"""


class FakeWriter:
    def __init__(self):
        self.written = b""
        self.closed = False

    def write(self, data: bytes):
        self.written += data

    async def drain(self):
        pass

    def close(self):
        self.closed = True

    async def wait_closed(self):
        pass


class FakeTransport:
    """In-memory network: which hosts answer ping, which ports are open, what they say."""

    def __init__(self, ping=None, open_ports=None, banners=None, hostnames=None):
        self.ping = ping or {}
        self.open_ports = open_ports or {}
        self.banners = banners or {}
        self.hostnames = hostnames or {}
        self.writers: dict[tuple[str, int], FakeWriter] = {}
        self.connects: list[tuple[str, int]] = []

    async def icmp_echo(self, ip, timeout):
        return self.ping.get(ip)

    async def tcp_connect(self, ip, port, timeout):
        self.connects.append((ip, port))
        return port in self.open_ports.get(ip, ())

    async def open_connection(self, ip, port, timeout):
        if port not in self.open_ports.get(ip, ()):
            raise ConnectionRefusedError(f"{ip}:{port}")
        reader = asyncio.StreamReader()
        data = self.banners.get((ip, port))
        if data:
            reader.feed_data(data)
        reader.feed_eof()
        writer = FakeWriter()
        self.writers[(ip, port)] = writer
        return reader, writer

    async def resolve_hostname(self, ip):
        return self.hostnames.get(ip)


class FakeMdns:
    def __init__(self, services=(), error=None):
        self.services = list(services)
        self.error = error

    async def browse(self, service_types, window=2.0, token=None):
        if self.error:
            raise self.error
        return self.services


class FakeSsdp:
    def __init__(self, responses=(), error=None):
        self.responses = list(responses)
        self.error = error

    async def discover(self, window=1.5, token=None):
        if self.error:
            raise self.error
        return self.responses


@pytest.fixture(autouse=True)
def _isolate_settings_env():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        MDNS_WINDOW=0.0,
        SSDP_WINDOW=0.0,
        SSDP_FETCH_DESCRIPTION=False,
        PROGRESS_THROTTLE=0.0,
        CURRENT_DEVICE_TYPE="laptop",
    )


@pytest.fixture
def context() -> NetworkContext:
    return NetworkContext(
        ip_address="192.168.1.42",
        subnet_mask="255.255.255.0",
        gateway="192.168.1.1",
        interface="wlan0",
        mac_address="3C:07:54:11:22:33",
    )
