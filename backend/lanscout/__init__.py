"""Local network discovery and device fingerprinting."""

__version__ = "1.0.0"
