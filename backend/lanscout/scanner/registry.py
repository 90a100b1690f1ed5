"""
Device registry: the single owner of device records during a scan.

Every producer (sweep, neighbor table, passive listeners, classifier) submits
a ``DeviceFact``; the registry merges it into the record for that IP. The
merge is idempotent and, with respect to which fields are present,
commutative, so producer completion order does not affect the final state.
"""

import ipaddress
import threading
from dataclasses import replace
from typing import Optional

from .models import DeviceFact, DeviceRecord, DeviceType, DiscoveryMethod, utcnow


def normalize_mac(mac: str) -> str:
    return mac.upper().replace("-", ":")


def _merge_services(existing: tuple[str, ...], new: tuple[str, ...]) -> tuple[str, ...]:
    merged = list(existing)
    for service in new:
        if service and service not in merged:
            merged.append(service)
    return tuple(merged)


def record_from_fact(fact: DeviceFact) -> DeviceRecord:
    """Minimal record for an IP seen for the first time."""
    seen = fact.seen_at or utcnow()
    return DeviceRecord(
        ip_address=fact.ip_address,
        mac_address=fact.mac_address,
        hostname=fact.hostname,
        device_type=fact.device_type or DeviceType.UNKNOWN,
        vendor=fact.vendor,
        custom_name=fact.custom_name,
        discovery_method=fact.discovery_method or DiscoveryMethod.PING,
        services=_merge_services((), fact.services),
        upnp_info=fact.upnp_info,
        is_online=True if fact.is_online is None else fact.is_online,
        is_current_device=fact.is_current_device,
        first_seen=seen,
        last_seen=seen,
        latency_ms=fact.latency_ms,
        signal_strength=fact.signal_strength,
    )


def merge(record: DeviceRecord, fact: DeviceFact) -> DeviceRecord:
    """
    Apply ``fact`` to ``record``.

    A field takes the fact's value only when the fact has one; absent values
    never erase what is already known. The discovery method only moves up in
    rank, so passive sources cannot relabel an actively found or manual
    record. The scanning host keeps its own type whatever the fact says.
    """
    changes = {}

    for name in ("mac_address", "hostname", "vendor", "custom_name",
                 "latency_ms", "signal_strength", "is_online"):
        value = getattr(fact, name)
        if value is not None:
            changes[name] = value

    if fact.discovery_method is not None and fact.discovery_method.rank > record.discovery_method.rank:
        changes["discovery_method"] = fact.discovery_method

    if fact.services:
        changes["services"] = _merge_services(record.services, fact.services)

    if fact.upnp_info is not None:
        changes["upnp_info"] = (
            record.upnp_info.merged_with(fact.upnp_info) if record.upnp_info else fact.upnp_info
        )

    if fact.is_current_device:
        changes["is_current_device"] = True

    if (
        fact.device_type is not None
        and fact.device_type != DeviceType.UNKNOWN
        and not (record.is_current_device or fact.is_current_device)
    ):
        changes["device_type"] = fact.device_type
    elif fact.is_current_device and fact.device_type is not None:
        changes["device_type"] = fact.device_type

    if fact.seen_at is not None:
        changes["first_seen"] = min(record.first_seen, fact.seen_at)
        changes["last_seen"] = max(record.last_seen, fact.seen_at)

    if not changes:
        return record
    return replace(record, **changes)


def fold(record: DeviceRecord, other: DeviceRecord) -> DeviceRecord:
    """Combine two records of one device; ``other`` wins where both know a field."""
    folded = merge(record, DeviceFact(
        ip_address=record.ip_address,
        mac_address=other.mac_address,
        hostname=other.hostname,
        device_type=other.device_type,
        vendor=other.vendor,
        custom_name=other.custom_name,
        discovery_method=other.discovery_method,
        services=other.services,
        upnp_info=other.upnp_info,
        is_online=other.is_online,
        is_current_device=other.is_current_device,
        latency_ms=other.latency_ms,
        signal_strength=other.signal_strength,
    ))
    return replace(
        folded,
        first_seen=min(record.first_seen, other.first_seen),
        last_seen=max(record.last_seen, other.last_seen),
    )


def _ip_sort_key(record: DeviceRecord):
    try:
        return (not record.is_current_device, int(ipaddress.IPv4Address(record.ip_address)))
    except ValueError:
        return (not record.is_current_device, 0)


class DeviceRegistry:
    """Thread-safe map of device records indexed by IP, with a MAC index."""

    def __init__(self):
        self._lock = threading.RLock()
        self._by_ip: dict[str, DeviceRecord] = {}
        self._ip_by_mac: dict[str, str] = {}

    def upsert(self, fact: DeviceFact) -> DeviceRecord:
        """Merge ``fact`` into the record for its IP, creating one if needed."""
        if fact.mac_address:
            fact = replace(fact, mac_address=normalize_mac(fact.mac_address))

        with self._lock:
            ip = fact.ip_address
            existing = self._by_ip.get(ip)

            if fact.mac_address:
                # Same hardware seen under a new address: move it, don't duplicate
                old_ip = self._ip_by_mac.get(fact.mac_address)
                if old_ip is not None and old_ip != ip:
                    moved = self._by_ip.pop(old_ip, None)
                    if moved is not None:
                        moved = replace(moved, ip_address=ip)
                        existing = moved if existing is None else fold(moved, existing)

            record = record_from_fact(fact) if existing is None else merge(existing, fact)

            if existing is not None and existing.mac_address and existing.mac_address != record.mac_address:
                self._ip_by_mac.pop(existing.mac_address, None)
            self._by_ip[ip] = record
            if record.mac_address:
                self._ip_by_mac[record.mac_address] = ip
            return record

    def get(self, key: str) -> Optional[DeviceRecord]:
        """Look up by IP address or MAC address."""
        with self._lock:
            record = self._by_ip.get(key)
            if record is not None:
                return record
            ip = self._ip_by_mac.get(normalize_mac(key))
            return self._by_ip.get(ip) if ip else None

    def __contains__(self, ip: str) -> bool:
        with self._lock:
            return ip in self._by_ip

    def __len__(self) -> int:
        with self._lock:
            return len(self._by_ip)

    def ips(self) -> list[str]:
        with self._lock:
            return list(self._by_ip)

    def snapshot(self) -> list[DeviceRecord]:
        """Current device first, then ascending IP."""
        with self._lock:
            records = list(self._by_ip.values())
        return sorted(records, key=_ip_sort_key)

    def clear(self) -> None:
        with self._lock:
            self._by_ip.clear()
            self._ip_by_mac.clear()
