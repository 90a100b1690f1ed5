"""
Local network context: the interface, address and gateway the scan runs on.
"""

import ipaddress
import logging
import socket
import struct
import subprocess
from typing import Optional

import psutil

from .models import NetworkContext

logger = logging.getLogger(__name__)

ROUTE_TABLE_PATH = "/proc/net/route"


def read_default_route(path: str = ROUTE_TABLE_PATH) -> Optional[tuple[str, str]]:
    """
    Return (interface, gateway) of the IPv4 default route.

    ``/proc/net/route`` stores addresses as little-endian hex.
    """
    try:
        with open(path) as f:
            lines = f.read().splitlines()[1:]
    except OSError as e:
        logger.debug("Cannot read route table: %s", e)
        return None

    for line in lines:
        fields = line.split()
        if len(fields) < 4 or fields[1] != "00000000":
            continue
        # RTF_GATEWAY
        if not int(fields[3], 16) & 0x2:
            continue
        try:
            gateway = socket.inet_ntoa(struct.pack("<L", int(fields[2], 16)))
        except (ValueError, struct.error):
            continue
        return fields[0], gateway
    return None


def read_ssid(interface: Optional[str] = None) -> Optional[str]:
    """SSID of the connected wireless network, if ``iwgetid`` knows one."""
    command = ["iwgetid", "-r"]
    if interface:
        command.insert(1, interface)
    try:
        result = subprocess.run(command, capture_output=True, text=True, timeout=2)
    except (OSError, subprocess.TimeoutExpired):
        return None
    ssid = result.stdout.strip()
    return ssid or None


def _ipv4_address(interface: str, addrs: dict) -> Optional[tuple[str, str, Optional[str]]]:
    ip = netmask = mac = None
    for addr in addrs.get(interface, []):
        if addr.family == socket.AF_INET and ip is None:
            ip, netmask = addr.address, addr.netmask
        elif addr.family == psutil.AF_LINK:
            mac = addr.address
    if not ip or not netmask:
        return None
    return ip, netmask, mac


def _pick_interface(addrs: dict, stats: dict) -> Optional[str]:
    """First interface that is up, not loopback and carries IPv4."""
    for name in addrs:
        st = stats.get(name)
        if not st or not st.isup:
            continue
        found = _ipv4_address(name, addrs)
        if found and not ipaddress.IPv4Address(found[0]).is_loopback:
            return name
    return None


def get_local_network_context(interface: Optional[str] = None) -> Optional[NetworkContext]:
    """
    Describe the local IPv4 network, or None when there is none.

    The interface defaults to the one carrying the default route.
    """
    addrs = psutil.net_if_addrs()
    stats = psutil.net_if_stats()

    gateway = None
    route = read_default_route()
    if interface is None and route:
        interface = route[0]
    if route and route[0] == interface:
        gateway = route[1]

    if interface is None or interface not in addrs:
        interface = _pick_interface(addrs, stats)
    if interface is None:
        logger.info("No IPv4 interface found")
        return None

    found = _ipv4_address(interface, addrs)
    if found is None:
        logger.info("Interface %s has no IPv4 address", interface)
        return None
    ip, netmask, mac = found

    st = stats.get(interface)
    link_speed = st.speed if st and st.speed else None

    context = NetworkContext(
        ip_address=ip,
        subnet_mask=netmask,
        gateway=gateway,
        ssid=read_ssid(interface),
        interface=interface,
        mac_address=mac.upper().replace("-", ":") if mac else None,
        link_speed=link_speed,
    )
    logger.debug("Network context: %s on %s", context.cidr, interface)
    return context
