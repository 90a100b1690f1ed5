"""
Primitive network probes: ICMP echo, TCP connect, stream open, reverse DNS.

Everything above this module talks to the network only through an
``AsyncioTransport`` so tests can substitute a fake.
"""

import asyncio
import logging
import math
import re
import socket
import time
from typing import Optional

logger = logging.getLogger(__name__)

_PING_TIME = re.compile(r"time[=<]\s*([\d.]+)\s*ms")


class AsyncioTransport:
    """Network primitives built on asyncio streams and the system ``ping``."""

    def __init__(self, ping_command: str = "ping"):
        self.ping_command = ping_command

    async def icmp_echo(self, ip: str, timeout: float) -> Optional[int]:
        """Send a single echo request; return latency in ms or None."""
        wait = str(max(1, math.ceil(timeout)))
        start = time.monotonic()
        try:
            process = await asyncio.create_subprocess_exec(
                self.ping_command, "-c", "1", "-W", wait, ip,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.DEVNULL
            )
        except OSError as e:
            logger.debug("ping unavailable: %s", e)
            return None

        try:
            stdout, _ = await asyncio.wait_for(process.communicate(), timeout=timeout + 1.0)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            return None
        except asyncio.CancelledError:
            process.kill()
            raise

        if process.returncode != 0:
            return None

        match = _PING_TIME.search(stdout.decode(errors="ignore"))
        if match:
            return int(round(float(match.group(1))))
        return int((time.monotonic() - start) * 1000)

    async def tcp_connect(self, ip: str, port: int, timeout: float) -> bool:
        """True if a TCP handshake with ``ip:port`` completes within ``timeout``."""
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(ip, port),
                timeout=timeout
            )
        except (asyncio.TimeoutError, ConnectionRefusedError, OSError):
            return False

        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass
        return True

    async def open_connection(self, ip: str, port: int, timeout: float):
        """Open a stream pair; raises ``OSError``/``asyncio.TimeoutError`` on failure."""
        return await asyncio.wait_for(asyncio.open_connection(ip, port), timeout=timeout)

    async def resolve_hostname(self, ip: str) -> Optional[str]:
        """Reverse DNS lookup; None when the name is unknown."""
        loop = asyncio.get_running_loop()
        try:
            hostname, _, _ = await loop.run_in_executor(None, socket.gethostbyaddr, ip)
        except (socket.herror, socket.gaierror, socket.timeout, OSError):
            return None
        if hostname and hostname != ip:
            return hostname
        return None
