"""
Reader for the kernel IPv4 neighbor (ARP) table.

The table is re-read at most once per TTL; the sweep performs hundreds of
lookups per run and re-parsing the source on every call would dominate the
run time. Phases that need fresh data call ``invalidate()`` first.
"""

import logging
import threading
import time
from typing import Callable, Optional

from .models import NeighborEntry

logger = logging.getLogger(__name__)

DEFAULT_TABLE_PATH = "/proc/net/arp"


def parse_neighbor_table(text: str) -> list[NeighborEntry]:
    """
    Parse the textual neighbor table.

    Format: IP address       HW type     Flags       HW address            Mask     Device
    Example: 192.168.1.1     0x1         0x2         aa:bb:cc:dd:ee:ff     *        wlan0
    """
    entries = []
    lines = text.splitlines()

    # First line is the column header
    for line in lines[1:]:
        parts = line.split()
        if len(parts) < 6:
            continue
        entries.append(NeighborEntry(
            ip_address=parts[0],
            hw_type=parts[1],
            flags=parts[2],
            hw_address=parts[3],
            mask=parts[4],
            interface=parts[5],
        ))

    return entries


def read_proc_arp(path: str = DEFAULT_TABLE_PATH) -> str:
    """Read the raw neighbor table; an unreadable table reads as empty."""
    try:
        with open(path, 'r') as f:
            return f.read()
    except OSError as e:
        logger.debug("Neighbor table %s unreadable: %s", path, e)
        return ""


class NeighborTable:
    """Short-TTL cached view of the neighbor table."""

    def __init__(
        self,
        source: Optional[Callable[[], str]] = None,
        ttl: float = 2.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._source = source or read_proc_arp
        self.ttl = ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: Optional[list[NeighborEntry]] = None
        self._read_at = 0.0

    def invalidate(self) -> None:
        """Force the next read to hit the source."""
        with self._lock:
            self._entries = None

    def read_all(self) -> list[NeighborEntry]:
        with self._lock:
            now = self._clock()
            if self._entries is None or now - self._read_at >= self.ttl:
                try:
                    self._entries = parse_neighbor_table(self._source())
                except OSError as e:
                    logger.debug("Neighbor table read failed: %s", e)
                    self._entries = []
                self._read_at = now
            return list(self._entries)

    def read_valid(self) -> list[NeighborEntry]:
        return [entry for entry in self.read_all() if entry.is_valid]

    def mac_for_ip(self, ip: str) -> Optional[str]:
        for entry in self.read_valid():
            if entry.ip_address == ip:
                return entry.normalized_mac
        return None

    def ip_for_mac(self, mac: str) -> Optional[str]:
        normalized = mac.upper().replace("-", ":")
        for entry in self.read_valid():
            if entry.normalized_mac == normalized:
                return entry.ip_address
        return None
