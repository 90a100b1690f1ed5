"""
Banner-based version extraction, service detection and OS guessing.

All of these are heuristics over whatever text the open ports volunteered;
a silent host yields nothing rather than a wrong answer.
"""

import re
from typing import Callable, Iterable, Optional

from .models import OsFamily, OsGuess, PortRecord
from .ports import TLS_PORTS, service_name

# First match wins; named servers come before the generic Server: header so
# "Server: nginx/1.25.0" yields "1.25.0" rather than the whole header value.
VERSION_PATTERNS = [
    re.compile(r"Apache/([\d.]+)"),
    re.compile(r"nginx/([\d.]+)"),
    re.compile(r"OpenSSH_([\d.p]+)"),
    re.compile(r"MySQL\s+([\d.]+)"),
    re.compile(r"PostgreSQL\s+([\d.]+)"),
    re.compile(r"Microsoft-IIS/([\d.]+)"),
    re.compile(r"vsftpd\s+([\d.]+)"),
    re.compile(r"ProFTPD\s+([\d.]+)"),
    re.compile(r"Dropbear\s+([\d.]+)"),
    re.compile(r"SSH-[\d.]+-([\w\d._-]+)"),
    re.compile(r"Server:\s*([^\r\n]+)", re.IGNORECASE),
]

SERVICE_KEYWORDS = [
    ("ssh", "SSH"),
    ("http", "HTTP"),
    ("ftp", "FTP"),
    ("smtp", "SMTP"),
    ("mysql", "MySQL"),
    ("postgresql", "PostgreSQL"),
    ("redis", "Redis"),
    ("mongodb", "MongoDB"),
    ("telnet", "Telnet"),
    ("vnc", "VNC"),
    ("rdp", "RDP"),
    ("remote desktop", "RDP"),
]


def extract_version(banner: Optional[str]) -> Optional[str]:
    """Version string from a banner, or None."""
    if not banner:
        return None
    for pattern in VERSION_PATTERNS:
        match = pattern.search(banner)
        if match:
            return match.group(1) if match.groups() else match.group(0)
    return None


def detect_service(port: int, banner: Optional[str]) -> Optional[str]:
    """Service name from banner keywords, else the well-known port name."""
    if banner:
        lower = banner.lower()
        for keyword, name in SERVICE_KEYWORDS:
            if keyword in lower:
                if name == "HTTP" and port in TLS_PORTS:
                    return "HTTPS"
                return name
    return service_name(port)


def os_score(
    ports: set[int],
    banners: str,
    indicator_ports: Iterable[int],
    keywords: Iterable[str],
) -> int:
    """2 points per indicator port open, 2 per keyword in the banner text."""
    score = 2 * len(ports & set(indicator_ports))
    score += 2 * sum(1 for keyword in keywords if keyword in banners)
    return score


def _windows_name(banners: str) -> str:
    if "windows 11" in banners or "10.0" in banners:
        return "Windows 11/10"
    if "windows 10" in banners:
        return "Windows 10"
    for year in ("2022", "2019", "2016"):
        if f"windows server {year}" in banners:
            return f"Windows Server {year}"
    if "windows server" in banners:
        return "Windows Server"
    return "Windows"


def _linux_name(banners: str) -> str:
    distros = [
        (("ubuntu",), "Ubuntu Linux"),
        (("debian",), "Debian Linux"),
        (("centos",), "CentOS Linux"),
        (("fedora",), "Fedora Linux"),
        (("rhel", "red hat"), "Red Hat Linux"),
        (("arch",), "Arch Linux"),
        (("alpine",), "Alpine Linux"),
    ]
    for keywords, name in distros:
        if any(k in banners for k in keywords):
            return name
    return "Linux"


def _router_name(banners: str) -> str:
    vendors = [
        (("mikrotik",), "MikroTik RouterOS"),
        (("cisco",), "Cisco IOS"),
        (("ubiquiti", "unifi"), "Ubiquiti"),
        (("openwrt",), "OpenWrt"),
        (("dd-wrt",), "DD-WRT"),
        (("netgear",), "Netgear"),
        (("asus",), "ASUS Router"),
        (("tp-link",), "TP-Link"),
    ]
    for keywords, name in vendors:
        if any(k in banners for k in keywords):
            return name
    return "Router"


def _printer_name(banners: str) -> str:
    vendors = [
        (("hp", "hewlett"), "HP Printer"),
        (("epson",), "Epson Printer"),
        (("canon",), "Canon Printer"),
        (("brother",), "Brother Printer"),
        (("xerox",), "Xerox Printer"),
        (("lexmark",), "Lexmark Printer"),
    ]
    for keywords, name in vendors:
        if any(k in banners for k in keywords):
            return name
    return OsFamily.PRINTER.display_name


# Iteration order is the tie-break: the first family with the top score wins
OS_SIGNATURES: dict[OsFamily, tuple[frozenset, tuple[str, ...], Callable[[str], str]]] = {
    OsFamily.WINDOWS: (
        frozenset({135, 139, 445, 3389, 1433, 5985, 5986}),
        ("windows", "microsoft", "iis", "mssql", "msrpc"),
        _windows_name,
    ),
    OsFamily.LINUX: (
        frozenset({22, 111, 2049}),
        ("linux", "ubuntu", "debian", "centos", "fedora", "openssh", "apache", "nginx"),
        _linux_name,
    ),
    OsFamily.MACOS: (
        frozenset({22, 548, 5900, 3283, 5000}),
        ("darwin", "macos", "apple", "airplay", "afp"),
        lambda banners: OsFamily.MACOS.display_name,
    ),
    OsFamily.ROUTER: (
        frozenset({23, 80, 443, 161, 53}),
        ("router", "mikrotik", "cisco", "netgear", "asus", "tp-link", "dlink", "ubiquiti"),
        _router_name,
    ),
    OsFamily.PRINTER: (
        frozenset({515, 631, 9100}),
        ("printer", "hp", "epson", "canon", "brother", "cups", "jetdirect"),
        _printer_name,
    ),
}


def fingerprint_os(open_ports: Iterable[PortRecord]) -> Optional[OsGuess]:
    """Best-scoring OS family for a set of open ports, or None if nothing scores."""
    open_ports = list(open_ports)
    ports = {p.port for p in open_ports}
    banners = " ".join(p.banner for p in open_ports if p.banner).lower()

    scores = {
        family: os_score(ports, banners, indicator_ports, keywords)
        for family, (indicator_ports, keywords, _) in OS_SIGNATURES.items()
    }
    family = max(scores, key=scores.get)
    score = scores[family]
    if score <= 0:
        return None

    namer = OS_SIGNATURES[family][2]
    return OsGuess(name=namer(banners), family=family, confidence=min(100, score * 20))
