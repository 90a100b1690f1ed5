import asyncio
import ipaddress
import logging
import socket
from dataclasses import asdict, replace
from typing import Callable, Iterable, Optional

from ..core.config import Settings, settings as default_settings
from ..core.exceptions import NoNetworkError, ScanCancelled, ScanInProgressError
from .cancellation import CancellationToken, gather_cancelling
from .classifier import classify
from .deep_scan import DeepScanner
from .mdns import SERVICE_TYPES, MdnsBrowser
from .models import (
    DeepScanProgress,
    DeepScanResult,
    DeviceFact,
    DeviceRecord,
    DeviceType,
    DiscoveryMethod,
    NetworkContext,
    ScanPhase,
    ScanProgress,
    ScanResult,
    ScanStatus,
    utcnow,
)
from .multicast import MulticastCapability
from .neighbor import NeighborTable, read_proc_arp
from .netinfo import get_local_network_context
from .progress import ProgressReporter, Throttle
from .reachability import ReachabilityProber
from .registry import DeviceRegistry, _ip_sort_key
from .ssdp import SsdpListener, enrich_with_descriptions, parse_ssdp_headers, upnp_info_from_headers
from .subnet import host_range
from .transport import AsyncioTransport
from .vendor import VendorLookup

logger = logging.getLogger(__name__)


def _has_context(context: Optional[NetworkContext]) -> bool:
    return context is not None and context.ip_address not in ("", "0.0.0.0")


class NetworkScanner:
    """Main network scanner orchestrating device discovery and deep scans.

    Every collaborator can be injected; anything left out is built from
    ``settings``.
    """

    def __init__(
        self,
        transport=None,
        neighbors: Optional[NeighborTable] = None,
        vendors: Optional[VendorLookup] = None,
        mdns: Optional[MdnsBrowser] = None,
        ssdp: Optional[SsdpListener] = None,
        multicast: Optional[MulticastCapability] = None,
        context_provider: Optional[Callable[[], Optional[NetworkContext]]] = None,
        deep_scanner: Optional[DeepScanner] = None,
        config: Optional[Settings] = None,
    ):
        self.config = config or default_settings
        self.transport = transport or AsyncioTransport()
        self.neighbors = neighbors or NeighborTable(
            source=lambda: read_proc_arp(self.config.ARP_TABLE_PATH),
            ttl=self.config.ARP_CACHE_TTL,
        )
        self.vendors = vendors or VendorLookup(self.config.OUI_DATABASE_PATH)
        self.mdns = mdns or MdnsBrowser(resolve_timeout=self.config.MDNS_RESOLVE_TIMEOUT)
        self.ssdp = ssdp or SsdpListener()
        self.multicast = multicast or MulticastCapability()
        self._context_provider = context_provider or (
            lambda: get_local_network_context(self.config.NETWORK_INTERFACE)
        )
        self.prober = ReachabilityProber(
            self.transport,
            fallback_ports=self.config.TCP_PROBE_PORTS,
            ping_timeout=self.config.PING_TIMEOUT,
            tcp_timeout=self.config.TCP_PROBE_TIMEOUT,
        )
        self.deep_scanner = deep_scanner or DeepScanner(
            self.transport,
            port_timeout=self.config.PORT_TIMEOUT,
            batch_size=self.config.PORT_BATCH_SIZE,
            banner_timeout=self.config.BANNER_TIMEOUT,
            banner_concurrency=self.config.BANNER_CONCURRENCY,
            banner_max_length=self.config.BANNER_MAX_LENGTH,
        )

        self.registry = DeviceRegistry()
        self.scan_progress = ProgressReporter("scan_progress", ScanProgress())
        self.scan_progress.register_callback(self._forward_progress)

        self.last_result: Optional[ScanResult] = None
        self._device_cache: dict[str, DeviceRecord] = {}
        self._deep_results: dict[str, DeepScanResult] = {}
        self._deep_progress: dict[str, ProgressReporter] = {}
        self._tokens: set[CancellationToken] = set()
        self._scanning = False
        self._websocket_callbacks = []

    def register_callback(self, callback):
        """Register a callback for scan updates."""
        self._websocket_callbacks.append(callback)

    def unregister_callback(self, callback):
        """Unregister a callback."""
        if callback in self._websocket_callbacks:
            self._websocket_callbacks.remove(callback)

    async def _notify_callbacks(self, event_type: str, data: dict):
        """Notify all registered callbacks."""
        for callback in list(self._websocket_callbacks):
            try:
                await callback(event_type, data)
            except Exception as e:
                logger.warning("Callback error: %s", e)

    async def _forward_progress(self, event_type: str, event):
        await self._notify_callbacks(event_type, asdict(event))

    @property
    def is_scanning(self) -> bool:
        return self._scanning

    async def get_network_context(self) -> Optional[NetworkContext]:
        """Current local network, or None when disconnected."""
        loop = asyncio.get_running_loop()
        context = await loop.run_in_executor(None, self._context_provider)
        return context if _has_context(context) else None

    def cancel(self) -> None:
        """Fire the cancellation token of every running scan."""
        for token in list(self._tokens):
            token.cancel()

    async def scan(self, token: Optional[CancellationToken] = None) -> ScanResult:
        """
        Run a full discovery scan of the local subnet.

        Returns an error result when there is no network; raises
        ``ScanCancelled`` when ``token`` fires and ``ScanInProgressError``
        when a scan is already running.
        """
        if self._scanning:
            raise ScanInProgressError("A scan is already in progress")

        token = token or CancellationToken()
        self._scanning = True
        self._tokens.add(token)
        try:
            result = await self._run_scan(token)
        except ScanCancelled:
            logger.info("Scan cancelled with %d devices found", len(self.registry))
            await self._notify_callbacks("scan_cancelled", {"devices_found": len(self.registry)})
            raise
        finally:
            self._scanning = False
            self._tokens.discard(token)

        self.last_result = result
        if result.status == ScanStatus.COMPLETED:
            await self._notify_callbacks("scan_completed", self._summary(result))
        else:
            await self._notify_callbacks("scan_failed", {"error": result.error})
        return result

    async def _run_scan(self, token: CancellationToken) -> ScanResult:
        started = utcnow()
        self.registry.clear()
        self.scan_progress.reset()

        context = await self.get_network_context()
        if context is None:
            error = NoNetworkError()
            logger.warning("Scan aborted: %s", error)
            return ScanResult(
                devices=[],
                started_at=started,
                finished_at=utcnow(),
                network=None,
                status=ScanStatus.ERROR,
                error=str(error),
            )

        logger.info("Scanning %s", context.cidr)
        self._add_current_device(context)

        try:
            with self.multicast.hold():
                self.neighbors.invalidate()

                await self._emit(ScanPhase.READING_ARP_CACHE, 0.05, "Checking network connectivity...")
                await self._probe_gateway(context, token)

                await self._emit(ScanPhase.READING_ARP_CACHE, 0.1, "Reading ARP cache...")
                self._read_neighbor_table()

                await self._emit(ScanPhase.PING_SWEEP, 0.2, "Scanning network...")
                await self._sweep(context, token)

                self.neighbors.invalidate()
                await self._emit(ScanPhase.PING_SWEEP, 0.55, "Getting device information...")
                self._backfill_from_neighbors()

                token.raise_if_cancelled()
                await self._emit(ScanPhase.MDNS_DISCOVERY, 0.6, "Discovering services...")
                await self._discover_mdns(token)

                token.raise_if_cancelled()
                await self._emit(ScanPhase.SSDP_DISCOVERY, 0.8, "Finding UPnP devices...")
                await self._discover_ssdp(token)

                token.raise_if_cancelled()
                await self._emit(ScanPhase.IDENTIFYING_DEVICES, 0.9, "Identifying devices...")
                await self._identify(token)

                await self._emit(ScanPhase.FINALIZING, 1.0, "Scan complete")
        except ScanCancelled:
            raise
        except Exception as e:
            logger.exception("Scan failed")
            return ScanResult(
                devices=self.registry.snapshot(),
                started_at=started,
                finished_at=utcnow(),
                network=context,
                status=ScanStatus.ERROR,
                error=str(e),
            )

        devices = self.registry.snapshot()
        for device in devices:
            self._device_cache[device.ip_address] = device

        logger.info("Scan complete: %d devices", len(devices))
        return ScanResult(
            devices=devices,
            started_at=started,
            finished_at=utcnow(),
            network=context,
            status=ScanStatus.COMPLETED,
        )

    async def _emit(self, phase: ScanPhase, progress: float, message: str,
                    current_target: Optional[str] = None):
        await self.scan_progress.emit(ScanProgress(
            phase=phase,
            progress=progress,
            message=message,
            devices_found=len(self.registry),
            current_target=current_target,
        ))

    def _add_current_device(self, context: NetworkContext):
        self.registry.upsert(DeviceFact(
            ip_address=context.ip_address,
            mac_address=context.mac_address,
            hostname=socket.gethostname() or None,
            device_type=DeviceType(self.config.CURRENT_DEVICE_TYPE),
            vendor=self.vendors.lookup(context.mac_address),
            discovery_method=DiscoveryMethod.MANUAL,
            is_online=True,
            is_current_device=True,
            seen_at=utcnow(),
        ))

    async def _probe_gateway(self, context: NetworkContext, token: CancellationToken):
        """Probe the gateway first so it lands in the neighbor table."""
        gateway = context.gateway
        if not gateway:
            return
        try:
            ipaddress.IPv4Address(gateway)
        except ValueError:
            return

        result = await self.prober.probe(gateway, token)
        if not result.reachable:
            logger.debug("Gateway %s did not respond", gateway)
            return

        self.neighbors.invalidate()
        mac = self.neighbors.mac_for_ip(gateway)
        self.registry.upsert(DeviceFact(
            ip_address=gateway,
            mac_address=mac,
            hostname="Gateway",
            device_type=DeviceType.ROUTER,
            vendor=self.vendors.lookup(mac),
            discovery_method=DiscoveryMethod.PING,
            is_online=True,
            latency_ms=result.latency_ms,
            seen_at=utcnow(),
        ))

    def _read_neighbor_table(self):
        for entry in self.neighbors.read_valid():
            mac = entry.normalized_mac
            self.registry.upsert(DeviceFact(
                ip_address=entry.ip_address,
                mac_address=mac,
                vendor=self.vendors.lookup(mac),
                discovery_method=DiscoveryMethod.ARP_CACHE,
                is_online=True,
            ))

    async def _sweep(self, context: NetworkContext, token: CancellationToken):
        hosts = host_range(context, limit=self.config.MAX_SCAN_HOSTS)
        total = len(hosts)
        if not total:
            return

        semaphore = asyncio.Semaphore(self.config.SWEEP_CONCURRENCY)
        throttle = Throttle(self.config.PROGRESS_THROTTLE)
        completed = 0
        devices_found = len(self.registry)

        async def probe(ip: str):
            nonlocal completed, devices_found
            async with semaphore:
                result = await self.prober.probe(ip, token)

            if result.reachable:
                mac = self.neighbors.mac_for_ip(ip)
                self.registry.upsert(DeviceFact(
                    ip_address=ip,
                    mac_address=mac,
                    vendor=self.vendors.lookup(mac),
                    discovery_method=DiscoveryMethod.PING,
                    is_online=True,
                    latency_ms=result.latency_ms,
                    seen_at=utcnow(),
                ))
                if throttle.ready():
                    devices_found = len(self.registry)

            completed += 1
            await self.scan_progress.emit(ScanProgress(
                phase=ScanPhase.PING_SWEEP,
                progress=0.2 + completed / total * 0.35,
                message=f"Scanned {completed}/{total} IPs",
                devices_found=devices_found,
                current_target=ip,
            ))

        await gather_cancelling(probe(ip) for ip in hosts)
        await self.scan_progress.update(devices_found=len(self.registry))

    def _backfill_from_neighbors(self):
        """Attach MACs learned while sweeping to records that lack them."""
        table = {entry.ip_address: entry.normalized_mac for entry in self.neighbors.read_valid()}
        for record in self.registry.snapshot():
            if record.mac_address and record.vendor:
                continue
            mac = table.get(record.ip_address)
            if mac:
                self.registry.upsert(DeviceFact(
                    ip_address=record.ip_address,
                    mac_address=mac,
                    vendor=self.vendors.lookup(mac),
                ))

    async def _discover_mdns(self, token: CancellationToken):
        try:
            services = await self.mdns.browse(SERVICE_TYPES, window=self.config.MDNS_WINDOW, token=token)
        except ScanCancelled:
            raise
        except Exception as e:
            logger.warning("mDNS discovery failed: %s", e)
            return

        for service in services:
            self.registry.upsert(DeviceFact(
                ip_address=service.ip_address,
                hostname=service.friendly_hostname,
                services=(service.service_type,),
                discovery_method=DiscoveryMethod.MDNS,
                is_online=True,
            ))
        logger.debug("mDNS resolved %d services", len(services))

    async def _discover_ssdp(self, token: CancellationToken):
        try:
            responses = await self.ssdp.discover(window=self.config.SSDP_WINDOW, token=token)
        except ScanCancelled:
            raise
        except Exception as e:
            logger.warning("SSDP discovery failed: %s", e)
            return

        infos = {}
        for ip, text in responses:
            info = upnp_info_from_headers(parse_ssdp_headers(text))
            infos[ip] = infos[ip].merged_with(info) if ip in infos else info

        if infos and self.config.SSDP_FETCH_DESCRIPTION:
            try:
                infos = await token.guard(
                    enrich_with_descriptions(infos, timeout=self.config.SSDP_DESCRIPTION_TIMEOUT)
                )
            except ScanCancelled:
                raise
            except Exception as e:
                logger.warning("UPnP description fetch failed: %s", e)

        for ip, info in infos.items():
            self.registry.upsert(DeviceFact(
                ip_address=ip,
                upnp_info=info,
                discovery_method=DiscoveryMethod.SSDP,
                is_online=True,
            ))
        logger.debug("SSDP answered from %d hosts", len(infos))

    async def _identify(self, token: CancellationToken):
        """Fill in MACs, hostnames and device types for every record."""
        self.neighbors.invalidate()
        table = {entry.ip_address: entry.normalized_mac for entry in self.neighbors.read_valid()}
        records = self.registry.snapshot()

        hostnames = {}
        missing = [r.ip_address for r in records if not r.hostname]
        if self.config.RESOLVE_HOSTNAMES and missing:
            resolved = await token.guard(asyncio.gather(
                *(self.transport.resolve_hostname(ip) for ip in missing),
                return_exceptions=True,
            ))
            hostnames = {ip: name for ip, name in zip(missing, resolved) if isinstance(name, str)}

        for record in records:
            mac = record.mac_address or table.get(record.ip_address)
            vendor = record.vendor or self.vendors.lookup(mac)
            hostname = record.hostname or hostnames.get(record.ip_address)

            device_type = None
            if not record.is_current_device and record.device_type == DeviceType.UNKNOWN:
                device_type = classify(
                    hostname=hostname,
                    vendor=vendor,
                    service_type=record.services[0] if record.services else None,
                    upnp_type=record.upnp_info.device_type if record.upnp_info else None,
                )

            self.registry.upsert(DeviceFact(
                ip_address=record.ip_address,
                mac_address=mac,
                hostname=hostname,
                vendor=vendor,
                device_type=device_type,
            ))

    def cached_devices(self) -> list[DeviceRecord]:
        """Devices from all completed scans, last known state per IP."""
        return sorted(self._device_cache.values(), key=_ip_sort_key)

    def get_device(self, key: str) -> Optional[DeviceRecord]:
        """Look up a device by IP or MAC, preferring the running scan."""
        record = self.registry.get(key)
        if record is not None:
            return record
        if key in self._device_cache:
            return self._device_cache[key]
        mac = key.upper().replace("-", ":")
        for device in self._device_cache.values():
            if device.mac_address == mac:
                return device
        return None

    def mark_all_offline(self) -> None:
        """Mark every cached device offline ahead of a re-scan."""
        for ip, device in list(self._device_cache.items()):
            self._device_cache[ip] = replace(device, is_online=False)

    async def deep_scan(
        self,
        ip: str,
        ports: Optional[Iterable[int]] = None,
        token: Optional[CancellationToken] = None,
    ) -> DeepScanResult:
        """Run the deep scan engine against ``ip`` and remember the result."""
        token = token or CancellationToken()
        self._tokens.add(token)
        # One stream per target; events carry the address they belong to
        reporter = ProgressReporter("deep_scan_progress", DeepScanProgress())

        async def forward(event_type: str, event: DeepScanProgress):
            await self._notify_callbacks(event_type, {"ip_address": ip, **asdict(event)})

        reporter.register_callback(forward)
        self._deep_progress[ip] = reporter
        try:
            result = await self.deep_scanner.scan(ip, ports, token=token, reporter=reporter)
        finally:
            self._tokens.discard(token)

        self._deep_results[ip] = result
        await self._notify_callbacks("deep_scan_completed", {
            "ip_address": ip,
            "status": result.status.value,
            "open_ports": result.port_count,
        })
        return result

    def last_deep_scan(self, ip: str) -> Optional[DeepScanResult]:
        return self._deep_results.get(ip)

    def deep_scan_progress(self, ip: str) -> Optional[DeepScanProgress]:
        """Latest progress of the running or last deep scan of ``ip``."""
        reporter = self._deep_progress.get(ip)
        return reporter.current if reporter else None

    @staticmethod
    def _summary(result: ScanResult) -> dict:
        return {
            "status": result.status.value,
            "devices_found": len(result.devices),
            "devices_online": result.online_count,
            "devices_offline": result.offline_count,
            "duration_ms": result.duration_ms,
            "subnet": result.network.cidr if result.network else None,
        }
