# Scanner module
from .deep_scan import DeepScanner
from .network_scanner import NetworkScanner
from .registry import DeviceRegistry

__all__ = ["NetworkScanner", "DeepScanner", "DeviceRegistry"]
