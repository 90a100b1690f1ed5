from fastapi import APIRouter, Depends, HTTPException, Query, Request
from typing import Optional
import ipaddress

from ..core.exceptions import ScanCancelled, ScanInProgressError
from ..scanner.models import ScanStatus
from ..scanner.network_scanner import NetworkScanner
from .schemas import (
    CompletedState,
    DeepScanRequest,
    DeepScanResponse,
    DeviceListResponse,
    DeviceResponse,
    ErrorState,
    IdleState,
    NetworkResponse,
    ScanningState,
    ScanProgressResponse,
    ScanState,
    ScanSummary,
    ScanTriggerResponse,
)

router = APIRouter()


def get_scanner(request: Request) -> NetworkScanner:
    """The scanner owned by the running application."""
    return request.app.state.scanner


def _matches(device, search_term: str) -> bool:
    fields = (device.hostname, device.custom_name, device.ip_address, device.mac_address, device.vendor)
    return any(value and search_term in value.lower() for value in fields)


@router.get("/network", response_model=NetworkResponse)
async def get_network(scanner: NetworkScanner = Depends(get_scanner)):
    """Describe the local network the scanner runs on."""
    context = await scanner.get_network_context()
    if context is None:
        raise HTTPException(status_code=404, detail="No network connection")
    return NetworkResponse(**context.to_dict())


@router.get("/devices", response_model=DeviceListResponse)
async def get_devices(
    online_only: bool = Query(False),
    search: Optional[str] = Query(None),
    scanner: NetworkScanner = Depends(get_scanner)
):
    """Get last known devices with optional filtering."""
    devices = scanner.cached_devices()

    if online_only:
        devices = [d for d in devices if d.is_online]

    if search:
        search_term = search.lower()
        devices = [d for d in devices if _matches(d, search_term)]

    return DeviceListResponse(
        devices=[DeviceResponse.model_validate(d) for d in devices],
        total=len(devices),
        online=sum(1 for d in devices if d.is_online)
    )


@router.get("/devices/{key}", response_model=DeviceResponse)
async def get_device(key: str, scanner: NetworkScanner = Depends(get_scanner)):
    """Get a device by IP or MAC address."""
    device = scanner.get_device(key)
    if not device:
        raise HTTPException(status_code=404, detail="Device not found")
    return DeviceResponse.model_validate(device)


@router.post("/scan/trigger", response_model=ScanTriggerResponse)
async def trigger_scan(scanner: NetworkScanner = Depends(get_scanner)):
    """Run a full network scan and wait for it to finish."""
    try:
        result = await scanner.scan()
    except ScanInProgressError:
        raise HTTPException(status_code=409, detail="A scan is already in progress")
    except ScanCancelled:
        return ScanTriggerResponse(success=False, message="Scan cancelled")

    if result.status != ScanStatus.COMPLETED:
        return ScanTriggerResponse(success=False, message=f"Scan failed: {result.error}")

    return ScanTriggerResponse(
        success=True,
        message="Scan completed successfully",
        devices_found=len(result.devices),
        devices_online=result.online_count,
        duration_ms=result.duration_ms,
        subnet=result.network.cidr if result.network else None
    )


@router.post("/scan/cancel")
async def cancel_scan(scanner: NetworkScanner = Depends(get_scanner)):
    """Cancel the running scan, if any."""
    was_scanning = scanner.is_scanning
    scanner.cancel()
    return {"cancelled": was_scanning}


@router.get("/scan/state", response_model=ScanState)
async def get_scan_state(scanner: NetworkScanner = Depends(get_scanner)):
    """Current scanner state: idle, scanning, completed or error."""
    if scanner.is_scanning:
        return ScanningState(progress=ScanProgressResponse.model_validate(scanner.scan_progress.current))

    result = scanner.last_result
    if result is None:
        return IdleState()
    if result.status == ScanStatus.ERROR:
        return ErrorState(message=result.error or "Scan failed")

    return CompletedState(summary=ScanSummary(
        status=result.status.value,
        devices_found=len(result.devices),
        devices_online=result.online_count,
        devices_offline=result.offline_count,
        duration_ms=result.duration_ms,
        subnet=result.network.cidr if result.network else None
    ))


def _validate_ip(ip: str) -> str:
    try:
        return str(ipaddress.IPv4Address(ip))
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid IPv4 address: {ip}")


@router.post("/devices/{ip}/deep-scan", response_model=DeepScanResponse)
async def deep_scan_device(
    ip: str,
    request: Optional[DeepScanRequest] = None,
    scanner: NetworkScanner = Depends(get_scanner)
):
    """Deep scan a single device: open ports, banners and OS guess."""
    ip = _validate_ip(ip)
    ports = request.ports if request else None
    result = await scanner.deep_scan(ip, ports)
    return DeepScanResponse.model_validate(result)


@router.get("/devices/{ip}/deep-scan", response_model=DeepScanResponse)
async def get_deep_scan(ip: str, scanner: NetworkScanner = Depends(get_scanner)):
    """Last deep scan result for a device."""
    result = scanner.last_deep_scan(_validate_ip(ip))
    if result is None:
        raise HTTPException(status_code=404, detail="No deep scan for this device")
    return DeepScanResponse.model_validate(result)
