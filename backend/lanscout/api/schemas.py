from pydantic import BaseModel, ConfigDict, Field, computed_field
from datetime import datetime
from typing import Annotated, Literal, Optional, Union

from ..scanner.models import (
    DeepScanStatus,
    DeviceType,
    DiscoveryMethod,
    OsFamily,
    PortState,
    ScanPhase,
)


class UpnpInfoResponse(BaseModel):
    """UPnP device information schema."""
    model_config = ConfigDict(from_attributes=True)

    friendly_name: Optional[str] = None
    manufacturer: Optional[str] = None
    model_name: Optional[str] = None
    model_number: Optional[str] = None
    device_type: Optional[str] = None
    location_url: Optional[str] = None
    serial_number: Optional[str] = None
    server: Optional[str] = None


class DeviceResponse(BaseModel):
    """Device response schema."""
    model_config = ConfigDict(from_attributes=True)

    unique_id: str
    display_name: str
    ip_address: str
    mac_address: Optional[str] = None
    hostname: Optional[str] = None
    device_type: DeviceType
    vendor: Optional[str] = None
    custom_name: Optional[str] = None
    discovery_method: DiscoveryMethod
    services: list[str] = []
    upnp_info: Optional[UpnpInfoResponse] = None
    is_online: bool
    is_current_device: bool
    first_seen: datetime
    last_seen: datetime
    latency_ms: Optional[int] = None
    signal_strength: Optional[int] = None
    has_details: bool = False

    @computed_field
    @property
    def device_type_name(self) -> str:
        return self.device_type.display_name


class DeviceListResponse(BaseModel):
    """Device list response."""
    devices: list[DeviceResponse]
    total: int
    online: int


class NetworkResponse(BaseModel):
    """Local network context schema."""
    ip_address: str
    subnet_mask: str
    prefix_length: int
    network_address: str
    cidr: str
    max_hosts: int
    gateway: Optional[str] = None
    ssid: Optional[str] = None
    bssid: Optional[str] = None
    interface: Optional[str] = None
    mac_address: Optional[str] = None
    frequency: Optional[int] = None
    link_speed: Optional[int] = None
    signal_strength: Optional[int] = None


class ScanSummary(BaseModel):
    """Summary of a finished scan."""
    status: str
    devices_found: int
    devices_online: int
    devices_offline: int = 0
    duration_ms: int
    subnet: Optional[str] = None
    error: Optional[str] = None


class ScanTriggerResponse(BaseModel):
    """Scan trigger response schema."""
    success: bool
    message: str
    devices_found: Optional[int] = None
    devices_online: Optional[int] = None
    duration_ms: Optional[int] = None
    subnet: Optional[str] = None


class ScanProgressResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    phase: ScanPhase
    progress: float
    message: str
    devices_found: int
    current_target: Optional[str] = None


class IdleState(BaseModel):
    state: Literal["idle"] = "idle"


class ScanningState(BaseModel):
    state: Literal["scanning"] = "scanning"
    progress: ScanProgressResponse


class CompletedState(BaseModel):
    state: Literal["completed"] = "completed"
    summary: ScanSummary


class ErrorState(BaseModel):
    state: Literal["error"] = "error"
    message: str


ScanState = Annotated[
    Union[IdleState, ScanningState, CompletedState, ErrorState],
    Field(discriminator="state"),
]


class DeepScanRequest(BaseModel):
    """Deep scan request; the default port list is used when ``ports`` is omitted."""
    ports: Optional[list[Annotated[int, Field(ge=1, le=65535)]]] = None


class PortResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    port: int
    protocol: str
    service_name: Optional[str] = None
    display_name: str
    banner: Optional[str] = None
    version: Optional[str] = None
    state: PortState


class OsGuessResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    name: str
    family: OsFamily
    version: Optional[str] = None
    confidence: int


class DeepScanResponse(BaseModel):
    """Deep scan result schema."""
    model_config = ConfigDict(from_attributes=True)

    ip_address: str
    scanned_at: datetime
    status: DeepScanStatus
    open_ports: list[PortResponse]
    os_guess: Optional[OsGuessResponse] = None
    duration_ms: int
    error: Optional[str] = None

