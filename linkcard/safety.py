"""
SSRF protection for user-supplied URLs.

The page-metadata and image-probe tiers fetch URLs that come from users
(or from pages users point at). Those must never reach loopback, private
networks or cloud metadata endpoints.

Hostnames are checked syntactically first, then resolved: a public-looking
name whose addresses include a blocked one is refused. The check runs
before every hop, but the HTTP client resolves again when it connects, so
a DNS answer that changes between the two lookups is not caught.
"""

import ipaddress
import re
import socket
from dataclasses import dataclass
from typing import List, Optional
from urllib.parse import urlparse

ALLOWED_SCHEMES = ('http', 'https')

BLOCKED_HOSTNAMES = (
    'localhost',
    'localhost.localdomain',
    'metadata.google.internal',
    'metadata.google',
    'metadata',
    'instance-data',
    'internal',
    'intranet',
    'corp',
    'local',
)

CLOUD_METADATA_IPS = (
    '169.254.169.254',  # AWS, GCP, Azure, DigitalOcean
    '169.254.170.2',    # AWS ECS task metadata
    '100.100.100.200',  # Alibaba Cloud
    'fd00:ec2::254',    # AWS IPv6 metadata
)

# Numeric host spellings that bypass naive IP checks
SUSPICIOUS_HOST_PATTERNS = (
    re.compile(r'^0x[0-9a-f]+$', re.I),  # hexadecimal
    re.compile(r'^\d{8,}$'),             # decimal
    re.compile(r'^0\d+\.'),              # octal
)


@dataclass(frozen=True)
class SafetyVerdict:
    safe: bool
    reason: Optional[str] = None


def resolve_host(hostname: str) -> List[str]:
    """Return every address the hostname resolves to."""
    infos = socket.getaddrinfo(hostname, None, proto=socket.IPPROTO_TCP)
    return [info[4][0] for info in infos]


def _numeric_ipv4(hostname: str) -> Optional[ipaddress.IPv4Address]:
    # inet_aton accepts shorthand like 127.1, 0x7f.1 and 2130706433
    try:
        return ipaddress.IPv4Address(socket.inet_aton(hostname))
    except (OSError, ValueError):
        return None


def _ip_is_blocked(ip) -> bool:
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        return True
    return (
        ip.is_private
        or ip.is_loopback
        or ip.is_link_local
        or ip.is_multicast
        or ip.is_reserved
        or ip.is_unspecified
        or ip in ipaddress.ip_network('100.64.0.0/10')
    )


def _address_is_blocked(address: str) -> bool:
    address = address.split('%', 1)[0]
    if address in CLOUD_METADATA_IPS:
        return True
    try:
        return _ip_is_blocked(ipaddress.ip_address(address))
    except ValueError:
        return True


def check_url_safe(url: str, resolve_dns: bool = True) -> SafetyVerdict:
    """
    Decide whether a URL may be fetched server-side.

    With resolve_dns=False only the URL text is inspected.
    """
    try:
        parsed = urlparse(url)
        hostname = parsed.hostname
    except ValueError:
        return SafetyVerdict(False, 'Invalid URL format')

    if parsed.scheme.lower() not in ALLOWED_SCHEMES:
        return SafetyVerdict(False, 'Only HTTP and HTTPS protocols are allowed')
    if not hostname:
        return SafetyVerdict(False, 'Invalid URL format')

    hostname = hostname.lower().rstrip('.')

    if any(hostname == blocked or hostname.endswith('.' + blocked) for blocked in BLOCKED_HOSTNAMES):
        return SafetyVerdict(False, 'Internal hostname not allowed')

    if hostname in CLOUD_METADATA_IPS:
        return SafetyVerdict(False, 'Cloud metadata endpoint not allowed')

    try:
        ip = ipaddress.ip_address(hostname)
    except ValueError:
        ip = None

    if ip is not None:
        if _ip_is_blocked(ip):
            return SafetyVerdict(False, 'Private or reserved IP address not allowed')
        return SafetyVerdict(True)

    # Anything the socket layer reads as an IPv4 address but is not written canonically
    if _numeric_ipv4(hostname) is not None:
        return SafetyVerdict(False, 'Suspicious hostname format')

    if any(pattern.search(hostname) for pattern in SUSPICIOUS_HOST_PATTERNS):
        return SafetyVerdict(False, 'Suspicious hostname format')

    if len(hostname) < 4 and '.' not in hostname:
        return SafetyVerdict(False, 'Hostname too short')

    if not resolve_dns:
        return SafetyVerdict(True)

    try:
        addresses = resolve_host(hostname)
    except (OSError, UnicodeError):
        return SafetyVerdict(False, 'Hostname does not resolve')
    if not addresses:
        return SafetyVerdict(False, 'Hostname does not resolve')
    if any(_address_is_blocked(address) for address in addresses):
        return SafetyVerdict(False, 'Hostname resolves to a private or reserved address')

    return SafetyVerdict(True)


def is_url_safe_for_fetch(url: str) -> bool:
    return check_url_safe(url).safe
