"""Tests for device type classification."""

import pytest

from lanscout.scanner.classifier import classify
from lanscout.scanner.models import DeviceType


@pytest.mark.parametrize("hostname, vendor, expected", [
    ("iPhone-de-Marie", None, DeviceType.SMARTPHONE),
    ("Living-Room-Roku", None, DeviceType.TV),
    (None, "Synology", DeviceType.NAS),
    ("ps5-console", None, DeviceType.GAME_CONSOLE),
    ("Office-HomePod", None, DeviceType.SMART_SPEAKER),
    ("raspberrypi", None, DeviceType.SERVER),
    ("Gateway", "TP-Link", DeviceType.ROUTER),
])
def test_keywords(hostname, vendor, expected):
    assert classify(hostname=hostname, vendor=vendor) == expected


def test_first_matching_type_wins():
    # "router" is checked before "pc"
    assert classify(hostname="pc-router") == DeviceType.ROUTER


@pytest.mark.parametrize("service_type, expected", [
    ("_googlecast._tcp.local.", DeviceType.TV),
    ("_raop._tcp.local.", DeviceType.SMART_SPEAKER),
    ("_ipp._tcp.local.", DeviceType.PRINTER),
    ("_afpovertcp._tcp.local.", DeviceType.NAS),
    ("_sftp-ssh._tcp.local.", DeviceType.SERVER),
])
def test_service_type_fallback(service_type, expected):
    assert classify(hostname="device-1234", service_type=service_type) == expected


@pytest.mark.parametrize("upnp_type, expected", [
    ("urn:schemas-upnp-org:device:MediaRenderer:1", DeviceType.TV),
    ("urn:schemas-upnp-org:device:InternetGatewayDevice:1", DeviceType.ROUTER),
])
def test_upnp_type_fallback(upnp_type, expected):
    assert classify(upnp_type=upnp_type) == expected


def test_unmatched_is_unknown():
    assert classify() == DeviceType.UNKNOWN
    assert classify(hostname="abc-123", vendor="Acme") == DeviceType.UNKNOWN
