"""
Deep scan of a single device: TCP port scan, banner grab, OS fingerprint.

Phases run in a fixed order and report progress in these ranges:
port scanning 0.0-0.6, banner grabbing 0.6-0.8, OS detection 0.8,
finalizing 1.0. Open ports are recorded as soon as they are found, so a
cancelled or failed scan still returns everything collected so far.
"""

import asyncio
import logging
import time
from dataclasses import replace
from typing import Iterable, Optional

from ..core.exceptions import ScanCancelled
from .cancellation import CancellationToken, gather_cancelling
from .fingerprint import detect_service, extract_version, fingerprint_os
from .models import (
    DeepScanPhase,
    DeepScanProgress,
    DeepScanResult,
    DeepScanStatus,
    PortRecord,
    utcnow,
)
from .ports import HTTP_PORTS, SILENT_BANNER_PORTS, TOP_PORTS, service_name
from .progress import ProgressReporter
from .transport import AsyncioTransport

logger = logging.getLogger(__name__)

HTTP_PROBE = b"HEAD / HTTP/1.0\r\n\r\n"
GENERIC_PROBE = b"\r\n"
BANNER_MAX_LINES = 5


class DeepScanner:
    """Port scanner and fingerprinter for one host."""

    def __init__(
        self,
        transport: Optional[AsyncioTransport] = None,
        port_timeout: float = 0.5,
        batch_size: int = 20,
        banner_timeout: float = 2.0,
        banner_concurrency: int = 10,
        banner_max_length: int = 200,
    ):
        self.transport = transport or AsyncioTransport()
        self.port_timeout = port_timeout
        self.batch_size = batch_size
        self.banner_timeout = banner_timeout
        self.banner_concurrency = banner_concurrency
        self.banner_max_length = banner_max_length

    async def scan(
        self,
        ip: str,
        ports: Optional[Iterable[int]] = None,
        token: Optional[CancellationToken] = None,
        reporter: Optional[ProgressReporter] = None,
    ) -> DeepScanResult:
        """
        Scan ``ports`` (default ``TOP_PORTS``) on ``ip``.

        Never raises for probe failures or cancellation; the outcome is in
        ``DeepScanResult.status``.
        """
        ports = list(dict.fromkeys(TOP_PORTS if ports is None else ports))
        token = token or CancellationToken()
        reporter = reporter or ProgressReporter("deep_scan_progress", DeepScanProgress())
        started = time.monotonic()
        found: dict[int, PortRecord] = {}

        def result(status: DeepScanStatus, os_guess=None, error: Optional[str] = None) -> DeepScanResult:
            return DeepScanResult(
                ip_address=ip,
                scanned_at=utcnow(),
                open_ports=[found[p] for p in sorted(found)],
                os_guess=os_guess,
                duration_ms=int((time.monotonic() - started) * 1000),
                status=status,
                error=error,
            )

        try:
            await self._scan_ports(ip, ports, found, token, reporter)

            if found:
                await self._grab_banners(ip, len(ports), found, token, reporter)

            token.raise_if_cancelled()
            await reporter.emit(DeepScanProgress(
                phase=DeepScanPhase.OS_DETECTION,
                progress=0.8,
                message="Detecting OS...",
                ports_scanned=len(ports),
                ports_total=len(ports),
                open_ports_found=len(found),
            ))
            os_guess = fingerprint_os(found.values())

            token.raise_if_cancelled()
            await reporter.emit(DeepScanProgress(
                phase=DeepScanPhase.FINALIZING,
                progress=1.0,
                message="Scan complete",
                ports_scanned=len(ports),
                ports_total=len(ports),
                open_ports_found=len(found),
            ))
            logger.info("Deep scan of %s: %d open ports", ip, len(found))
            return result(DeepScanStatus.COMPLETED, os_guess=os_guess)

        except ScanCancelled:
            logger.info("Deep scan of %s cancelled with %d open ports", ip, len(found))
            return result(DeepScanStatus.CANCELLED)
        except Exception as e:
            logger.exception("Deep scan of %s failed", ip)
            return result(DeepScanStatus.FAILED, error=str(e))

    async def _scan_ports(self, ip, ports, found, token, reporter):
        total = len(ports)
        scanned = 0

        await reporter.emit(DeepScanProgress(
            phase=DeepScanPhase.PORT_SCANNING,
            progress=0.0,
            message="Scanning ports...",
            ports_total=total,
        ))

        async def check_port(port: int):
            nonlocal scanned
            is_open = await token.guard(self.transport.tcp_connect(ip, port, self.port_timeout))
            scanned += 1
            if is_open:
                found[port] = PortRecord(port=port, service_name=service_name(port))
            await reporter.emit(DeepScanProgress(
                phase=DeepScanPhase.PORT_SCANNING,
                progress=scanned / total * 0.6,
                message=f"Scanning port {port}...",
                current_port=port,
                ports_scanned=scanned,
                ports_total=total,
                open_ports_found=len(found),
            ))

        for i in range(0, total, self.batch_size):
            token.raise_if_cancelled()
            await gather_cancelling(check_port(p) for p in ports[i:i + self.batch_size])

    async def _grab_banners(self, ip, total, found, token, reporter):
        records = [found[p] for p in sorted(found)]
        semaphore = asyncio.Semaphore(self.banner_concurrency)
        completed = 0

        await reporter.emit(DeepScanProgress(
            phase=DeepScanPhase.BANNER_GRABBING,
            progress=0.6,
            message="Grabbing banners...",
            ports_scanned=total,
            ports_total=total,
            open_ports_found=len(records),
        ))

        async def analyze(record: PortRecord):
            nonlocal completed
            async with semaphore:
                banner = await token.guard(self.grab_banner(ip, record.port))
            completed += 1
            found[record.port] = replace(
                record,
                banner=banner[:self.banner_max_length] if banner else None,
                version=extract_version(banner),
                service_name=record.service_name or detect_service(record.port, banner),
            )
            await reporter.emit(DeepScanProgress(
                phase=DeepScanPhase.BANNER_GRABBING,
                progress=0.6 + completed / len(records) * 0.2,
                message=f"Analyzing port {record.port}...",
                current_port=record.port,
                ports_scanned=total,
                ports_total=total,
                open_ports_found=len(records),
            ))

        await gather_cancelling(analyze(r) for r in records)

    async def grab_banner(self, ip: str, port: int) -> Optional[str]:
        """Read up to five lines a service sends back; None if it stays silent."""
        try:
            reader, writer = await self.transport.open_connection(ip, port, self.banner_timeout)
        except (asyncio.TimeoutError, OSError):
            return None

        lines = []
        try:
            if port in HTTP_PORTS:
                writer.write(HTTP_PROBE)
                await writer.drain()
            elif port not in SILENT_BANNER_PORTS:
                writer.write(GENERIC_PROBE)
                await writer.drain()

            for _ in range(BANNER_MAX_LINES):
                line = await asyncio.wait_for(reader.readline(), timeout=self.banner_timeout)
                if not line:
                    break
                lines.append(line.decode("utf-8", errors="replace"))
        except (asyncio.TimeoutError, OSError, ValueError) as e:
            # Timeouts end the read; whatever arrived so far is the banner
            logger.debug("Banner read from %s:%d stopped: %r", ip, port, e)
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except OSError:
                pass

        banner = "".join(lines).strip()
        return banner or None
