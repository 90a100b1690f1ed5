"""
IPv4 address arithmetic and the host range probed by the sweep.
"""

import ipaddress
from itertools import islice
from typing import Union

from .models import NetworkContext

DEFAULT_HOST_LIMIT = 254

Address = Union[str, int]


def ip_to_int(ip: Address) -> int:
    """Dotted quad (or int passthrough) to a 32-bit integer."""
    return int(ipaddress.IPv4Address(ip))


def int_to_ip(value: int) -> str:
    return str(ipaddress.IPv4Address(value))


def prefix_length(mask: Address) -> int:
    """Number of set bits in the subnet mask."""
    return bin(ip_to_int(mask)).count("1")


def network_address(ip: Address, mask: Address) -> str:
    return int_to_ip(ip_to_int(ip) & ip_to_int(mask))


def max_hosts(prefix: int) -> int:
    return (1 << (32 - prefix)) - 2


def host_range(context: NetworkContext, limit: int = DEFAULT_HOST_LIMIT) -> list[str]:
    """
    Addresses to probe for ``context``.

    Prefixes of /24 and longer yield exactly the usable hosts of the subnet.
    Larger subnets are capped at the first ``limit`` hosts after the network
    address to bound scan time; the rest of the subnet is not scanned.
    """
    prefix = context.prefix
    usable = max_hosts(prefix)
    if usable <= 0:
        return []

    network = ipaddress.IPv4Network(f"{context.network_address}/{prefix}")
    count = usable if prefix >= 24 else min(limit, usable)
    return [str(host) for host in islice(network.hosts(), count)]
