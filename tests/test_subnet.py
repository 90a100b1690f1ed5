"""Tests for subnet arithmetic and host range enumeration."""

import ipaddress

import pytest

from lanscout.scanner.models import NetworkContext
from lanscout.scanner.subnet import host_range, max_hosts, network_address, prefix_length


def test_home_network_example():
    context = NetworkContext(ip_address="192.168.1.42", subnet_mask="255.255.255.0", gateway="192.168.1.1")

    hosts = host_range(context)

    assert context.network_address == "192.168.1.0"
    assert context.cidr == "192.168.1.0/24"
    assert len(hosts) == 254
    assert hosts[0] == "192.168.1.1"
    assert hosts[-1] == "192.168.1.254"


@pytest.mark.parametrize("prefix", [24, 25, 26, 27, 28, 29, 30])
def test_host_range_excludes_network_and_broadcast(prefix):
    mask = str(ipaddress.IPv4Network(f"0.0.0.0/{prefix}").netmask)
    context = NetworkContext(ip_address="10.20.30.77", subnet_mask=mask)
    network = ipaddress.IPv4Network(f"10.20.30.77/{prefix}", strict=False)

    hosts = host_range(context)

    assert len(hosts) == min(254, 2 ** (32 - prefix) - 2)
    assert str(network.network_address) not in hosts
    assert str(network.broadcast_address) not in hosts
    assert all(ipaddress.IPv4Address(h) in network for h in hosts)


def test_large_subnet_is_capped():
    context = NetworkContext(ip_address="10.0.5.9", subnet_mask="255.255.0.0")

    hosts = host_range(context)

    assert len(hosts) == 254
    assert hosts[0] == "10.0.0.1"
    assert hosts[-1] == "10.0.0.254"


def test_point_to_point_links_have_no_hosts():
    assert host_range(NetworkContext(ip_address="10.0.0.1", subnet_mask="255.255.255.254")) == []
    assert host_range(NetworkContext(ip_address="10.0.0.1", subnet_mask="255.255.255.255")) == []


def test_helpers():
    assert prefix_length("255.255.252.0") == 22
    assert network_address("172.16.5.130", "255.255.255.128") == "172.16.5.128"
    assert max_hosts(24) == 254


def test_context_to_dict_includes_derived_fields(context):
    data = context.to_dict()

    assert data["prefix_length"] == 24
    assert data["cidr"] == "192.168.1.0/24"
    assert data["max_hosts"] == 254
