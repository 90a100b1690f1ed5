"""
OUI (Organizationally Unique Identifier) lookup for MAC address vendor identification.
Uses an optional local JSON database from maclookup.app and a small embedded table.
"""

import json
import logging
import threading
from pathlib import Path
from typing import Optional, Union

logger = logging.getLogger(__name__)

# Fallback OUI prefixes for common home-network manufacturers
FALLBACK_OUI = {
    "000393": "Apple",
    "000502": "Apple",
    "000A27": "Apple",
    "000A95": "Apple",
    "3C0754": "Apple",
    "A4B197": "Apple",
    "F0DBF8": "Apple",
    "00FC8B": "Amazon",
    "0C47C9": "Amazon",
    "102C6B": "Amazon",
    "18742E": "Amazon",
    "083AF2": "Espressif",
    "240AC4": "Espressif",
    "2462AB": "Espressif",
    "246F28": "Espressif",
    "001A11": "Google",
    "3C5AB4": "Google",
    "546009": "Google",
    "94EB2C": "Google",
    "001788": "Philips Hue",
    "ECB5FA": "Philips Hue",
    "B827EB": "Raspberry Pi",
    "DCA632": "Raspberry Pi",
    "E45F01": "Raspberry Pi",
    "001247": "Samsung",
    "0012FB": "Samsung",
    "001377": "Samsung",
    "0015B9": "Samsung",
    "000E58": "Sonos",
    "347E5C": "Sonos",
    "48A6B8": "Sonos",
    "5CAAFD": "Sonos",
    "001132": "Synology",
    "003192": "TP-Link",
    "14CC20": "TP-Link",
    "14EBB6": "TP-Link",
    "18A6F7": "TP-Link",
    "00156D": "Ubiquiti",
    "002722": "Ubiquiti",
    "0418D6": "Ubiquiti",
    "18E829": "Ubiquiti",
}


def _normalize_mac(mac: str) -> str:
    """Uppercase hex digits without separators."""
    return mac.upper().replace(':', '').replace('-', '').replace('.', '')


class VendorLookup:
    """MAC-prefix to vendor name table, loaded lazily on first lookup."""

    def __init__(self, database_path: Optional[Union[str, Path]] = None,
                 fallback: Optional[dict[str, str]] = None):
        self.database_path = Path(database_path) if database_path else None
        self._fallback = FALLBACK_OUI if fallback is None else fallback
        self._table: dict[str, str] = {}
        self._loaded = False
        self._lock = threading.Lock()

    def _load(self) -> None:
        with self._lock:
            if self._loaded:
                return
            self._loaded = True

            if self.database_path is None:
                return
            if not self.database_path.exists():
                logger.warning("OUI database not found at %s", self.database_path)
                return

            try:
                with open(self.database_path, 'r') as f:
                    data = json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                logger.warning("Failed to load OUI database: %s", e)
                return

            # Format: [{"macPrefix":"00:00:0C","vendorName":"Cisco Systems, Inc",...}, ...]
            for entry in data:
                prefix = entry.get('macPrefix', '')
                vendor = entry.get('vendorName', '')
                if prefix and vendor:
                    self._table[_normalize_mac(prefix)] = vendor

            logger.info("OUI database loaded: %d vendors", len(self._table))

    def lookup(self, mac: Optional[str]) -> Optional[str]:
        """
        Look up the vendor for a MAC address.

        Args:
            mac: MAC address in any format (e.g., "00:11:22:33:44:55", "00-11-22-33-44-55", "001122334455")

        Returns:
            Vendor name or None if not found
        """
        if not mac:
            return None
        if not self._loaded:
            self._load()

        mac_clean = _normalize_mac(mac)

        # MA-S and MA-M blocks use 36- and 28-bit prefixes; longest match wins
        for length in (9, 7, 6):
            if len(mac_clean) >= length:
                vendor = self._table.get(mac_clean[:length])
                if vendor:
                    return vendor

        return self._fallback.get(mac_clean[:6])

    def __len__(self) -> int:
        if not self._loaded:
            self._load()
        return len(self._table)
