"""Tests for version extraction, service detection and OS guessing."""

import pytest

from lanscout.scanner.fingerprint import OS_SIGNATURES, detect_service, extract_version, fingerprint_os, os_score
from lanscout.scanner.models import OsFamily, PortRecord


@pytest.mark.parametrize("banner, version", [
    ("HTTP/1.1 200 OK\r\nServer: nginx/1.25.0\r\n", "1.25.0"),
    ("SSH-2.0-OpenSSH_8.9p1 Ubuntu-3ubuntu0.1", "8.9p1"),
    ("SSH-2.0-dropbear_2020.81", "dropbear_2020.81"),
    ("HTTP/1.0 200 OK\r\nServer: lighttpd\r\n", "lighttpd"),
    ("220 (vsFTPd 3.0.3)", None),
    ("220 ProFTPD 1.3.5e Server", "1.3.5"),
    ("HTTP/1.1 200 OK\r\nServer: Microsoft-IIS/10.0\r\n", "10.0"),
    (None, None),
])
def test_extract_version(banner, version):
    assert extract_version(banner) == version


@pytest.mark.parametrize("port, banner, service", [
    (2222, "SSH-2.0-OpenSSH_9.0", "SSH"),
    (8443, "HTTP/1.1 400 Bad Request", "HTTPS"),
    (8888, "HTTP/1.1 200 OK", "HTTP"),
    (6380, "-ERR unknown command, redis", "Redis"),
    (3390, "Remote Desktop", "RDP"),
    (6379, None, "Redis"),
    (12345, None, None),
])
def test_detect_service(port, banner, service):
    assert detect_service(port, banner) == service


def test_os_score():
    assert os_score({22, 80}, "openssh ubuntu", {22, 111}, ["openssh", "debian"]) == 4


@pytest.mark.parametrize("ports, banner, score, confidence, family", [
    ({22, 111}, "SSH-2.0-OpenSSH_8.4", 6, 100, OsFamily.LINUX),
    ({111}, None, 2, 40, OsFamily.LINUX),
    ({631, 9100}, "CUPS/2.4", 6, 100, OsFamily.PRINTER),
])
def test_os_score_sets_confidence(ports, banner, score, confidence, family):
    records = [PortRecord(p, banner=banner if p == min(ports) else None) for p in sorted(ports)]
    signature = OS_SIGNATURES[family]

    assert os_score(ports, (banner or "").lower(), signature[0], signature[1]) == score
    guess = fingerprint_os(records)
    assert (guess.family, guess.confidence) == (family, confidence)


def test_windows_host():
    guess = fingerprint_os([PortRecord(135), PortRecord(139), PortRecord(445), PortRecord(3389)])

    assert guess.family == OsFamily.WINDOWS
    assert guess.name == "Windows"
    assert guess.confidence == 100


def test_linux_distribution_from_banner():
    guess = fingerprint_os([PortRecord(22, banner="SSH-2.0-OpenSSH_8.9p1 Ubuntu-3ubuntu0.1")])

    assert guess.family == OsFamily.LINUX
    assert guess.name == "Ubuntu Linux"
    # port 22 (2) + openssh (2) + ubuntu (2)
    assert guess.confidence == 100


def test_printer():
    guess = fingerprint_os([PortRecord(631), PortRecord(9100)])

    assert guess.family == OsFamily.PRINTER
    assert guess.name == "Printer"
    assert guess.confidence == 80


def test_router_vendor():
    guess = fingerprint_os([PortRecord(53), PortRecord(80, banner="Server: MikroTik")])

    assert guess.family == OsFamily.ROUTER
    assert guess.name == "MikroTik RouterOS"


def test_tie_goes_to_first_family():
    # Port 22 alone scores 2 for both linux and macos
    guess = fingerprint_os([PortRecord(22)])

    assert guess.family == OsFamily.LINUX
    assert guess.confidence == 40


def test_nothing_to_go_on():
    assert fingerprint_os([]) is None
    assert fingerprint_os([PortRecord(6379)]) is None
