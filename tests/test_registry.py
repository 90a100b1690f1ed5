"""Tests for the device registry and its merge rules."""

import asyncio
from dataclasses import asdict
from datetime import datetime, timedelta, timezone
from itertools import permutations

from lanscout.scanner.models import DeviceFact, DeviceType, DiscoveryMethod, UpnpInfo
from lanscout.scanner.registry import DeviceRegistry, fold, merge, record_from_fact

T0 = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def test_absent_fields_never_erase():
    record = record_from_fact(DeviceFact(
        ip_address="192.168.1.20",
        hostname="nas",
        mac_address="00:11:32:00:00:01",
        vendor="Synology",
        seen_at=T0,
    ))

    merged = merge(record, DeviceFact(ip_address="192.168.1.20", latency_ms=4))

    assert merged.hostname == "nas"
    assert merged.mac_address == "00:11:32:00:00:01"
    assert merged.vendor == "Synology"
    assert merged.latency_ms == 4


def test_merge_is_idempotent():
    record = record_from_fact(DeviceFact(ip_address="10.0.0.5", seen_at=T0))
    fact = DeviceFact(ip_address="10.0.0.5", hostname="printer", services=("_ipp._tcp.local.",),
                      discovery_method=DiscoveryMethod.MDNS, seen_at=T0)

    once = merge(record, fact)
    twice = merge(once, fact)

    assert asdict(once) == asdict(twice)


def test_merge_order_does_not_matter():
    facts = [
        DeviceFact(ip_address="10.0.0.5", mac_address="AA:BB:CC:00:00:01",
                   discovery_method=DiscoveryMethod.ARP_CACHE, seen_at=T0),
        DeviceFact(ip_address="10.0.0.5", latency_ms=3, discovery_method=DiscoveryMethod.PING,
                   seen_at=T0 + timedelta(seconds=5)),
        DeviceFact(ip_address="10.0.0.5", hostname="tv", services=("_airplay._tcp.local.",),
                   discovery_method=DiscoveryMethod.MDNS),
        DeviceFact(ip_address="10.0.0.5", upnp_info=UpnpInfo(device_type="urn:x:MediaRenderer:1"),
                   discovery_method=DiscoveryMethod.SSDP),
    ]

    results = []
    for order in permutations(facts):
        registry = DeviceRegistry()
        for fact in order:
            registry.upsert(fact)
        record = registry.get("10.0.0.5")
        results.append((record.mac_address, record.hostname, record.latency_ms,
                        set(record.services), record.upnp_info, record.discovery_method))

    assert all(r == results[0] for r in results)
    assert results[0][-1] == DiscoveryMethod.ARP_CACHE


def test_discovery_method_is_never_downgraded():
    record = record_from_fact(DeviceFact(ip_address="10.0.0.9", discovery_method=DiscoveryMethod.PING))

    merged = merge(record, DeviceFact(ip_address="10.0.0.9", discovery_method=DiscoveryMethod.SSDP))

    assert merged.discovery_method == DiscoveryMethod.PING


def test_services_are_deduplicated_in_insertion_order():
    registry = DeviceRegistry()
    for service in ("_http._tcp.local.", "_ssh._tcp.local.", "_http._tcp.local."):
        registry.upsert(DeviceFact(ip_address="10.0.0.2", services=(service,)))

    assert registry.get("10.0.0.2").services == ("_http._tcp.local.", "_ssh._tcp.local.")


def test_seen_times_widen():
    registry = DeviceRegistry()
    registry.upsert(DeviceFact(ip_address="10.0.0.3", seen_at=T0))
    registry.upsert(DeviceFact(ip_address="10.0.0.3", seen_at=T0 - timedelta(minutes=1)))
    registry.upsert(DeviceFact(ip_address="10.0.0.3", seen_at=T0 + timedelta(minutes=1)))

    record = registry.get("10.0.0.3")
    assert record.first_seen == T0 - timedelta(minutes=1)
    assert record.last_seen == T0 + timedelta(minutes=1)


def test_current_device_keeps_its_type():
    registry = DeviceRegistry()
    registry.upsert(DeviceFact(ip_address="10.0.0.42", device_type=DeviceType.LAPTOP,
                               is_current_device=True, discovery_method=DiscoveryMethod.MANUAL))
    registry.upsert(DeviceFact(ip_address="10.0.0.42", device_type=DeviceType.ROUTER))

    record = registry.get("10.0.0.42")
    assert record.device_type == DeviceType.LAPTOP
    assert record.is_current_device
    assert record.discovery_method == DiscoveryMethod.MANUAL


def test_mac_learning_keeps_one_slot():
    registry = DeviceRegistry()
    registry.upsert(DeviceFact(ip_address="10.0.0.7", hostname="phone"))
    registry.upsert(DeviceFact(ip_address="10.0.0.7", mac_address="aa-bb-cc-dd-ee-ff"))

    assert len(registry) == 1
    record = registry.get("AA:BB:CC:DD:EE:FF")
    assert record.ip_address == "10.0.0.7"
    assert record.unique_id == "AA:BB:CC:DD:EE:FF"
    assert record.hostname == "phone"


def test_known_mac_under_new_ip_migrates():
    registry = DeviceRegistry()
    registry.upsert(DeviceFact(ip_address="10.0.0.7", mac_address="AA:BB:CC:DD:EE:FF", hostname="phone"))
    registry.upsert(DeviceFact(ip_address="10.0.0.8", mac_address="AA:BB:CC:DD:EE:FF"))

    assert registry.ips() == ["10.0.0.8"]
    assert registry.get("10.0.0.8").hostname == "phone"
    assert "10.0.0.7" not in registry


def test_mac_learned_by_existing_ip_absorbs_old_record():
    registry = DeviceRegistry()
    registry.upsert(DeviceFact(ip_address="10.0.0.7", mac_address="AA:BB:CC:DD:EE:FF", hostname="phone",
                               discovery_method=DiscoveryMethod.ARP_CACHE))
    registry.upsert(DeviceFact(ip_address="10.0.0.5", latency_ms=4, discovery_method=DiscoveryMethod.PING))
    registry.upsert(DeviceFact(ip_address="10.0.0.5", mac_address="aa-bb-cc-dd-ee-ff"))

    records = registry.snapshot()
    assert [(r.ip_address, r.unique_id) for r in records] == [("10.0.0.5", "AA:BB:CC:DD:EE:FF")]
    record = records[0]
    assert (record.hostname, record.latency_ms) == ("phone", 4)
    assert record.discovery_method == DiscoveryMethod.ARP_CACHE
    assert registry.get("AA:BB:CC:DD:EE:FF") is record
    assert "10.0.0.7" not in registry


def test_fold_keeps_widest_seen_window():
    early, late = T0, T0 + timedelta(days=1)
    old = record_from_fact(DeviceFact(ip_address="10.0.0.7", hostname="phone", seen_at=early))
    new = record_from_fact(DeviceFact(ip_address="10.0.0.5", hostname="pixel", seen_at=late))

    folded = fold(old, new)

    assert folded.ip_address == "10.0.0.7"
    assert folded.hostname == "pixel"
    assert (folded.first_seen, folded.last_seen) == (early, late)


def test_snapshot_orders_current_device_first_then_numeric_ip():
    registry = DeviceRegistry()
    for ip in ("10.0.0.100", "10.0.0.9", "10.0.0.20"):
        registry.upsert(DeviceFact(ip_address=ip))
    registry.upsert(DeviceFact(ip_address="10.0.0.50", is_current_device=True))

    assert [r.ip_address for r in registry.snapshot()] == ["10.0.0.50", "10.0.0.9", "10.0.0.20", "10.0.0.100"]


def test_concurrent_upserts_lose_nothing():
    registry = DeviceRegistry()

    async def produce(field, value):
        await asyncio.sleep(0)
        registry.upsert(DeviceFact(ip_address="10.0.0.1", **{field: value}))

    async def main():
        await asyncio.gather(
            produce("hostname", "router"),
            produce("mac_address", "AA:00:00:00:00:01"),
            produce("vendor", "Ubiquiti"),
            produce("latency_ms", 2),
        )

    asyncio.run(main())

    record = registry.get("10.0.0.1")
    assert (record.hostname, record.mac_address, record.vendor, record.latency_ms) == (
        "router", "AA:00:00:00:00:01", "Ubiquiti", 2)


def test_identity_and_display_name():
    record = record_from_fact(DeviceFact(ip_address="192.168.1.33", vendor="Sonos"))

    assert record.unique_id == "192.168.1.33"
    assert record.display_name == "Sonos (33)"
    assert record.short_id == "33"
    assert record == record_from_fact(DeviceFact(ip_address="192.168.1.33"))


def test_record_serializes_with_derived_fields():
    record = record_from_fact(DeviceFact(ip_address="192.168.1.33", mac_address="AA:00:00:00:00:33",
                                         services=("_raop._tcp.local.",)))

    data = record.to_dict()

    assert data["unique_id"] == "AA:00:00:00:00:33"
    assert data["display_name"] == "192.168.1.33"
    assert data["services"] == ["_raop._tcp.local."]


def test_has_details():
    bare = record_from_fact(DeviceFact(ip_address="192.168.1.33", latency_ms=3))

    assert not bare.has_details
    assert merge(bare, DeviceFact(ip_address="192.168.1.33", vendor="Sonos")).has_details
    assert merge(bare, DeviceFact(ip_address="192.168.1.33", services=("_raop._tcp.local.",))).has_details
