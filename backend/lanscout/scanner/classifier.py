"""
Best-effort device type detection from hostname, vendor and advertised services.

This is a keyword heuristic, not a device database: the first type whose
keywords appear anywhere in the combined lowercase text wins.
"""

from typing import Optional

from .models import DeviceType

# Checked in order; earlier types win on ambiguous text
DEVICE_TYPE_KEYWORDS: list[tuple[DeviceType, tuple[str, ...]]] = [
    (DeviceType.ROUTER, ("router", "gateway", "netgear", "linksys", "asus", "tp-link", "d-link", "cisco")),
    (DeviceType.SMARTPHONE, ("iphone", "android", "pixel", "samsung", "oneplus", "xiaomi", "huawei", "mobile")),
    (DeviceType.TABLET, ("ipad", "tablet", "galaxy tab", "surface")),
    (DeviceType.LAPTOP, ("macbook", "laptop", "notebook", "thinkpad", "dell", "hp", "lenovo")),
    (DeviceType.DESKTOP, ("desktop", "pc", "imac", "workstation")),
    (DeviceType.TV, ("tv", "television", "roku", "firetv", "chromecast", "appletv", "samsung tv", "lg tv", "sony tv")),
    (DeviceType.GAME_CONSOLE, ("playstation", "xbox", "nintendo", "switch", "ps4", "ps5")),
    (DeviceType.SMART_SPEAKER, ("alexa", "echo", "google home", "homepod", "sonos")),
    (DeviceType.SMART_HOME, ("nest", "hue", "smart", "iot", "thermostat", "camera", "ring", "wyze")),
    (DeviceType.PRINTER, ("printer", "epson", "hp", "canon", "brother")),
    (DeviceType.NAS, ("nas", "synology", "qnap", "storage", "diskstation")),
    (DeviceType.SERVER, ("server", "linux", "ubuntu", "debian", "centos", "raspberry")),
    (DeviceType.WEARABLE, ("watch", "fitbit", "garmin", "wearable")),
]


def _from_service_type(service_type: str) -> Optional[DeviceType]:
    if "_airplay" in service_type or "_googlecast" in service_type:
        return DeviceType.TV
    if "_raop" in service_type:
        return DeviceType.SMART_SPEAKER
    if "_printer" in service_type or "_ipp" in service_type:
        return DeviceType.PRINTER
    if "_smb" in service_type or "_afpovertcp" in service_type:
        return DeviceType.NAS
    if "_ssh" in service_type or "_sftp" in service_type:
        return DeviceType.SERVER
    return None


def _from_upnp_type(upnp_type: str) -> Optional[DeviceType]:
    if "MediaRenderer" in upnp_type:
        return DeviceType.TV
    if "MediaServer" in upnp_type:
        return DeviceType.NAS
    if "InternetGatewayDevice" in upnp_type:
        return DeviceType.ROUTER
    if "Printer" in upnp_type:
        return DeviceType.PRINTER
    return None


def classify(
    hostname: Optional[str] = None,
    vendor: Optional[str] = None,
    service_type: Optional[str] = None,
    upnp_type: Optional[str] = None,
) -> DeviceType:
    """Map the known strings about a device to a ``DeviceType``."""
    search = " ".join(
        value.lower() for value in (hostname, vendor, service_type, upnp_type) if value
    )
    if not search:
        return DeviceType.UNKNOWN

    for device_type, keywords in DEVICE_TYPE_KEYWORDS:
        if any(keyword in search for keyword in keywords):
            return device_type

    if service_type:
        detected = _from_service_type(service_type)
        if detected:
            return detected

    if upnp_type:
        detected = _from_upnp_type(upnp_type)
        if detected:
            return detected

    return DeviceType.UNKNOWN
