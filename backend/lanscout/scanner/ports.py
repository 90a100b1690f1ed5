"""Well-known TCP port tables used by the deep scan."""

from typing import Optional

# Ports probed by a deep scan when no explicit list is given
TOP_PORTS = [
    21, 22, 23, 25, 53, 80, 110, 111, 135, 139, 143, 443, 445, 465, 587,
    993, 995, 1080, 1433, 1434, 1521, 1723, 2049, 2082, 2083, 2086, 2087,
    2121, 3306, 3389, 3690, 4443, 5000, 5060, 5432, 5631, 5632, 5900, 5901,
    5902, 6000, 6379, 6443, 6666, 6667, 7001, 7002, 8000, 8008, 8080, 8081,
    8443, 8888, 9000, 9090, 9200, 9418, 10000, 11211, 27017, 27018, 28017,
    49152, 49153, 49154, 49155, 49156, 49157,
]

PORT_SERVICES = {
    20: "FTP Data",
    21: "FTP",
    22: "SSH",
    23: "Telnet",
    25: "SMTP",
    53: "DNS",
    67: "DHCP Server",
    68: "DHCP Client",
    69: "TFTP",
    80: "HTTP",
    110: "POP3",
    111: "RPC",
    119: "NNTP",
    123: "NTP",
    135: "MSRPC",
    137: "NetBIOS Name",
    138: "NetBIOS Datagram",
    139: "NetBIOS Session",
    143: "IMAP",
    161: "SNMP",
    162: "SNMP Trap",
    389: "LDAP",
    443: "HTTPS",
    445: "SMB",
    465: "SMTPS",
    514: "Syslog",
    515: "LPD",
    587: "SMTP Submission",
    631: "IPP/CUPS",
    636: "LDAPS",
    993: "IMAPS",
    995: "POP3S",
    1080: "SOCKS",
    1194: "OpenVPN",
    1433: "MSSQL",
    1434: "MSSQL Browser",
    1521: "Oracle DB",
    1701: "L2TP",
    1723: "PPTP",
    1812: "RADIUS",
    1813: "RADIUS Accounting",
    2049: "NFS",
    2082: "cPanel",
    2083: "cPanel SSL",
    2086: "WHM",
    2087: "WHM SSL",
    3306: "MySQL",
    3389: "RDP",
    3690: "SVN",
    4443: "Pharos",
    5000: "UPnP",
    5060: "SIP",
    5061: "SIP TLS",
    5432: "PostgreSQL",
    5631: "pcAnywhere Data",
    5632: "pcAnywhere",
    5900: "VNC",
    5901: "VNC-1",
    5902: "VNC-2",
    6000: "X11",
    6379: "Redis",
    6443: "Kubernetes API",
    6667: "IRC",
    7001: "WebLogic",
    7002: "WebLogic SSL",
    8000: "HTTP Alt",
    8008: "HTTP Alt",
    8080: "HTTP Proxy",
    8081: "HTTP Alt",
    8443: "HTTPS Alt",
    8888: "HTTP Alt",
    9000: "SonarQube",
    9090: "Prometheus",
    9200: "Elasticsearch",
    9300: "Elasticsearch",
    9418: "Git",
    10000: "Webmin",
    11211: "Memcached",
    27017: "MongoDB",
    27018: "MongoDB",
    28017: "MongoDB Web",
}

# Ports that get an HTTP HEAD request to coax out a Server header
HTTP_PORTS = frozenset({80, 443, 8000, 8008, 8080, 8081, 8443, 8888})

# Services that greet the client on their own; sending anything first only
# adds an error line to the banner
SILENT_BANNER_PORTS = frozenset({21, 22, 25, 110, 143, 587, 3306, 5900, 5901, 5902})

TLS_PORTS = frozenset({443, 8443})


def service_name(port: int) -> Optional[str]:
    return PORT_SERVICES.get(port)
