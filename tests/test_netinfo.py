"""Tests for local network context discovery."""

import socket
from collections import namedtuple

import psutil

from lanscout.scanner import netinfo

Addr = namedtuple("Addr", "family address netmask")
Stats = namedtuple("Stats", "isup speed")

ROUTES = """\
Iface\tDestination\tGateway \tFlags\tRefCnt\tUse\tMetric\tMask\t\tMTU\tWindow\tIRTT
wlan0\t0000A8C0\t00000000\t0001\t0\t0\t600\t00FFFFFF\t0\t0\t0
eth0\t00000000\t00000000\t0001\t0\t0\t100\t00000000\t0\t0\t0
wlan0\t00000000\t0101A8C0\t0003\t0\t0\t600\t00000000\t0\t0\t0
"""

ADDRS = {
    "lo": [Addr(socket.AF_INET, "127.0.0.1", "255.0.0.0")],
    "docker0": [Addr(socket.AF_INET, "172.17.0.1", "255.255.0.0")],
    "wlan0": [
        Addr(psutil.AF_LINK, "3c-07-54-11-22-33", None),
        Addr(socket.AF_INET, "192.168.1.42", "255.255.255.0"),
    ],
}

STATS = {
    "lo": Stats(True, 0),
    "docker0": Stats(False, 0),
    "wlan0": Stats(True, 866),
}


def test_default_route(tmp_path):
    routes = tmp_path / "route"
    routes.write_text(ROUTES)

    assert netinfo.read_default_route(str(routes)) == ("wlan0", "192.168.1.1")


def test_default_route_missing(tmp_path):
    assert netinfo.read_default_route(str(tmp_path / "nope")) is None


def _fake_host(monkeypatch, route=("wlan0", "192.168.1.1"), addrs=ADDRS):
    monkeypatch.setattr(netinfo.psutil, "net_if_addrs", lambda: addrs)
    monkeypatch.setattr(netinfo.psutil, "net_if_stats", lambda: STATS)
    monkeypatch.setattr(netinfo, "read_default_route", lambda: route)
    monkeypatch.setattr(netinfo, "read_ssid", lambda interface=None: "HomeNet")


def test_context_from_default_route_interface(monkeypatch):
    _fake_host(monkeypatch)

    context = netinfo.get_local_network_context()

    assert context.interface == "wlan0"
    assert context.ip_address == "192.168.1.42"
    assert context.cidr == "192.168.1.0/24"
    assert context.gateway == "192.168.1.1"
    assert context.mac_address == "3C:07:54:11:22:33"
    assert context.ssid == "HomeNet"
    assert context.link_speed == 866


def test_context_without_default_route_picks_up_interface(monkeypatch):
    _fake_host(monkeypatch, route=None)

    context = netinfo.get_local_network_context()

    # lo is loopback and docker0 is down
    assert context.interface == "wlan0"
    assert context.gateway is None


def test_no_network(monkeypatch):
    _fake_host(monkeypatch, route=None, addrs={"lo": ADDRS["lo"]})

    assert netinfo.get_local_network_context() is None
