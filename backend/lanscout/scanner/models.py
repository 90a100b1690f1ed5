"""
Data model for the discovery and deep-scan engine.

Records are immutable dataclasses; the registry produces updated copies with
``dataclasses.replace`` instead of mutating shared objects.
"""

import ipaddress
from dataclasses import dataclass, field, asdict, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Any


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DeviceType(str, Enum):
    """Device categories with display names."""

    ROUTER = "router"
    SMARTPHONE = "smartphone"
    TABLET = "tablet"
    LAPTOP = "laptop"
    DESKTOP = "desktop"
    TV = "tv"
    GAME_CONSOLE = "game_console"
    SMART_SPEAKER = "smart_speaker"
    SMART_HOME = "smart_home"
    PRINTER = "printer"
    NAS = "nas"
    SERVER = "server"
    WEARABLE = "wearable"
    UNKNOWN = "unknown"

    @property
    def display_name(self) -> str:
        return _DEVICE_TYPE_NAMES[self]


_DEVICE_TYPE_NAMES = {
    DeviceType.ROUTER: "Router",
    DeviceType.SMARTPHONE: "Smartphone",
    DeviceType.TABLET: "Tablet",
    DeviceType.LAPTOP: "Laptop",
    DeviceType.DESKTOP: "Desktop",
    DeviceType.TV: "Smart TV",
    DeviceType.GAME_CONSOLE: "Game Console",
    DeviceType.SMART_SPEAKER: "Smart Speaker",
    DeviceType.SMART_HOME: "Smart Home Device",
    DeviceType.PRINTER: "Printer",
    DeviceType.NAS: "NAS/Storage",
    DeviceType.SERVER: "Server",
    DeviceType.WEARABLE: "Wearable",
    DeviceType.UNKNOWN: "Unknown Device",
}


class DiscoveryMethod(str, Enum):
    """How a device was (best) discovered."""

    ARP_CACHE = "arp_cache"
    PING = "ping"
    MDNS = "mdns"
    SSDP = "ssdp"
    NETBIOS = "netbios"
    MANUAL = "manual"

    @property
    def rank(self) -> int:
        """Priority used when merging; a record never drops to a lower rank."""
        return _DISCOVERY_RANK[self]


_DISCOVERY_RANK = {
    DiscoveryMethod.NETBIOS: 0,
    DiscoveryMethod.SSDP: 1,
    DiscoveryMethod.MDNS: 2,
    DiscoveryMethod.PING: 3,
    DiscoveryMethod.ARP_CACHE: 4,
    DiscoveryMethod.MANUAL: 5,
}


@dataclass
class NetworkContext:
    """The local IPv4 network the scanning host sits on."""
    ip_address: str
    subnet_mask: str
    gateway: Optional[str] = None
    ssid: Optional[str] = None
    bssid: Optional[str] = None
    interface: Optional[str] = None
    mac_address: Optional[str] = None
    prefix_length: Optional[int] = None
    frequency: Optional[int] = None
    link_speed: Optional[int] = None
    signal_strength: Optional[int] = None

    @property
    def prefix(self) -> int:
        if self.prefix_length is not None:
            return self.prefix_length
        return sum(bin(int(part)).count("1") for part in self.subnet_mask.split("."))

    @property
    def network_address(self) -> str:
        ip = int(ipaddress.IPv4Address(self.ip_address))
        mask = int(ipaddress.IPv4Address(self.subnet_mask))
        return str(ipaddress.IPv4Address(ip & mask))

    @property
    def cidr(self) -> str:
        return f"{self.network_address}/{self.prefix}"

    @property
    def max_hosts(self) -> int:
        # Subtract network and broadcast addresses
        return (1 << (32 - self.prefix)) - 2

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data.update(
            prefix_length=self.prefix,
            network_address=self.network_address,
            cidr=self.cidr,
            max_hosts=self.max_hosts,
        )
        return data


@dataclass(frozen=True)
class UpnpInfo:
    """SSDP/UPnP device information."""
    friendly_name: Optional[str] = None
    manufacturer: Optional[str] = None
    model_name: Optional[str] = None
    model_number: Optional[str] = None
    device_type: Optional[str] = None
    location_url: Optional[str] = None
    serial_number: Optional[str] = None
    server: Optional[str] = None

    def merged_with(self, other: Optional["UpnpInfo"]) -> "UpnpInfo":
        """Field-wise merge where present values in ``other`` win."""
        if other is None:
            return self
        changes = {k: v for k, v in asdict(other).items() if v is not None}
        return replace(self, **changes)


@dataclass(frozen=True, eq=False)
class DeviceRecord:
    """A network device known to the registry."""
    ip_address: str
    mac_address: Optional[str] = None
    hostname: Optional[str] = None
    device_type: DeviceType = DeviceType.UNKNOWN
    vendor: Optional[str] = None
    custom_name: Optional[str] = None
    discovery_method: DiscoveryMethod = DiscoveryMethod.PING
    services: tuple[str, ...] = ()
    upnp_info: Optional[UpnpInfo] = None
    is_online: bool = True
    is_current_device: bool = False
    first_seen: datetime = field(default_factory=utcnow)
    last_seen: datetime = field(default_factory=utcnow)
    latency_ms: Optional[int] = None
    signal_strength: Optional[int] = None

    @property
    def unique_id(self) -> str:
        return self.mac_address or self.ip_address

    @property
    def display_name(self) -> str:
        """customName > hostname > vendor + IP suffix > IP."""
        if self.custom_name:
            return self.custom_name
        if self.hostname and self.hostname.strip() and self.hostname != self.ip_address:
            return self.hostname
        if self.vendor:
            return f"{self.vendor} ({self.ip_address.rsplit('.', 1)[-1]})"
        return self.ip_address

    @property
    def short_id(self) -> str:
        if self.mac_address:
            return self.mac_address[-8:].upper()
        return self.ip_address.rsplit(".", 1)[-1]

    @property
    def has_details(self) -> bool:
        """Known by more than its address."""
        return bool(self.hostname or self.vendor or self.services or self.upnp_info)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DeviceRecord):
            return NotImplemented
        return self.unique_id == other.unique_id

    def __hash__(self) -> int:
        return hash(self.unique_id)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["services"] = list(self.services)
        data["unique_id"] = self.unique_id
        data["display_name"] = self.display_name
        return data


@dataclass(frozen=True)
class DeviceFact:
    """A single observation about the device at ``ip_address``.

    ``None`` means "not observed"; merging never lets an absent value
    overwrite a present one.
    """
    ip_address: str
    mac_address: Optional[str] = None
    hostname: Optional[str] = None
    device_type: Optional[DeviceType] = None
    vendor: Optional[str] = None
    custom_name: Optional[str] = None
    discovery_method: Optional[DiscoveryMethod] = None
    services: tuple[str, ...] = ()
    upnp_info: Optional[UpnpInfo] = None
    is_online: Optional[bool] = None
    is_current_device: bool = False
    seen_at: Optional[datetime] = None
    latency_ms: Optional[int] = None
    signal_strength: Optional[int] = None


@dataclass(frozen=True)
class NeighborEntry:
    """Row of the kernel neighbor (ARP) table."""
    ip_address: str
    hw_type: str
    flags: str
    hw_address: str
    mask: str
    interface: str

    @property
    def is_valid(self) -> bool:
        """Not incomplete and not the zero address."""
        return self.hw_address != "00:00:00:00:00:00" and self.flags != "0x0"

    @property
    def normalized_mac(self) -> str:
        return self.hw_address.upper().replace("-", ":")


class ScanStatus(str, Enum):
    COMPLETED = "completed"
    ERROR = "error"


@dataclass
class ScanResult:
    """Result of a full network scan."""
    devices: list[DeviceRecord]
    started_at: datetime
    finished_at: datetime
    network: Optional[NetworkContext]
    status: ScanStatus
    error: Optional[str] = None

    @property
    def duration_ms(self) -> int:
        return int((self.finished_at - self.started_at).total_seconds() * 1000)

    @property
    def online_count(self) -> int:
        return sum(1 for d in self.devices if d.is_online)

    @property
    def offline_count(self) -> int:
        return sum(1 for d in self.devices if not d.is_online)


class PortState(str, Enum):
    OPEN = "open"
    CLOSED = "closed"
    FILTERED = "filtered"


@dataclass(frozen=True)
class PortRecord:
    """Information about an open port."""
    port: int
    protocol: str = "TCP"
    service_name: Optional[str] = None
    banner: Optional[str] = None
    version: Optional[str] = None
    state: PortState = PortState.OPEN

    @property
    def display_name(self) -> str:
        from .ports import service_name

        return self.service_name or service_name(self.port) or "Unknown"


class OsFamily(str, Enum):
    WINDOWS = "windows"
    LINUX = "linux"
    MACOS = "macos"
    IOS = "ios"
    ANDROID = "android"
    BSD = "bsd"
    ROUTER = "router"
    PRINTER = "printer"
    EMBEDDED = "embedded"
    UNKNOWN = "unknown"

    @property
    def display_name(self) -> str:
        return _OS_FAMILY_NAMES[self]


_OS_FAMILY_NAMES = {
    OsFamily.WINDOWS: "Windows",
    OsFamily.LINUX: "Linux",
    OsFamily.MACOS: "macOS",
    OsFamily.IOS: "iOS",
    OsFamily.ANDROID: "Android",
    OsFamily.BSD: "BSD",
    OsFamily.ROUTER: "Router OS",
    OsFamily.PRINTER: "Printer",
    OsFamily.EMBEDDED: "Embedded",
    OsFamily.UNKNOWN: "Unknown",
}


@dataclass(frozen=True)
class OsGuess:
    """Detected operating system."""
    name: str
    family: OsFamily = OsFamily.UNKNOWN
    version: Optional[str] = None
    confidence: int = 0  # 0-100


class DeepScanStatus(str, Enum):
    PENDING = "pending"
    SCANNING = "scanning"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class DeepScanResult:
    """Result of a deep scan on a single device."""
    ip_address: str
    scanned_at: datetime = field(default_factory=utcnow)
    open_ports: list[PortRecord] = field(default_factory=list)
    os_guess: Optional[OsGuess] = None
    duration_ms: int = 0
    status: DeepScanStatus = DeepScanStatus.PENDING
    error: Optional[str] = None

    @property
    def port_count(self) -> int:
        return len(self.open_ports)


class ScanPhase(str, Enum):
    INITIALIZING = "initializing"
    READING_ARP_CACHE = "reading_arp_cache"
    PING_SWEEP = "ping_sweep"
    MDNS_DISCOVERY = "mdns_discovery"
    SSDP_DISCOVERY = "ssdp_discovery"
    IDENTIFYING_DEVICES = "identifying_devices"
    FINALIZING = "finalizing"


@dataclass(frozen=True)
class ScanProgress:
    phase: ScanPhase = ScanPhase.INITIALIZING
    progress: float = 0.0  # 0.0 to 1.0
    message: str = "Ready"
    devices_found: int = 0
    current_target: Optional[str] = None


class DeepScanPhase(str, Enum):
    INITIALIZING = "initializing"
    PORT_SCANNING = "port_scanning"
    BANNER_GRABBING = "banner_grabbing"
    OS_DETECTION = "os_detection"
    FINALIZING = "finalizing"


@dataclass(frozen=True)
class DeepScanProgress:
    phase: DeepScanPhase = DeepScanPhase.INITIALIZING
    progress: float = 0.0
    message: str = ""
    current_port: Optional[int] = None
    ports_scanned: int = 0
    ports_total: int = 0
    open_ports_found: int = 0
