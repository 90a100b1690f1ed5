"""
Per-address liveness check: ICMP echo first, then a race of TCP connects.

Plain echo probing misses hosts that firewall ICMP (most desktop OSes do by
default), so a failed echo falls back to connecting to ports such hosts
usually leave open.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Optional, Sequence

from .cancellation import CancellationToken

logger = logging.getLogger(__name__)

# SMB, NetBIOS, SSH, HTTP, HTTPS, HTTP-alt, RDP, iOS sync
DEFAULT_FALLBACK_PORTS = (445, 139, 22, 80, 443, 8080, 3389, 62078)


@dataclass(frozen=True)
class ProbeResult:
    reachable: bool
    latency_ms: Optional[int] = None


UNREACHABLE = ProbeResult(False)


class ReachabilityProber:
    """Two-tier reachability probe."""

    def __init__(
        self,
        transport,
        fallback_ports: Sequence[int] = DEFAULT_FALLBACK_PORTS,
        ping_timeout: float = 1.0,
        tcp_timeout: float = 0.2,
    ):
        self.transport = transport
        self.fallback_ports = tuple(fallback_ports)
        self.ping_timeout = ping_timeout
        self.tcp_timeout = tcp_timeout

    async def probe(self, ip: str, token: Optional[CancellationToken] = None) -> ProbeResult:
        token = token or CancellationToken()

        latency = await token.guard(self.transport.icmp_echo(ip, self.ping_timeout))
        if latency is not None:
            return ProbeResult(True, latency)

        return await token.guard(self._tcp_race(ip))

    async def _tcp_race(self, ip: str) -> ProbeResult:
        """Connect to all fallback ports at once; the first success wins."""
        if not self.fallback_ports:
            return UNREACHABLE

        start = time.monotonic()
        pending = {
            asyncio.ensure_future(self.transport.tcp_connect(ip, port, self.tcp_timeout))
            for port in self.fallback_ports
        }
        try:
            while pending:
                done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                for task in done:
                    if not task.cancelled() and task.exception() is None and task.result():
                        latency = int((time.monotonic() - start) * 1000)
                        return ProbeResult(True, latency)
        finally:
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        return UNREACHABLE
