"""SSRF protection and sensitive header handling for HTTP monitors."""
import asyncio
import ipaddress
import logging
import socket
from typing import Dict, Optional, Union
from urllib.parse import urlparse

from ..exceptions import UrlValidationError

logger = logging.getLogger(__name__)

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]

ALLOWED_SCHEMES = ("http", "https")

BLOCKED_HOSTNAMES = {
    "localhost",
    "localhost.localdomain",
    "ip6-localhost",
    "ip6-loopback",
    "metadata",
    "metadata.google.internal",
    "instance-data",
}

BLOCKED_SUFFIXES = (".local", ".internal", ".localhost", ".lan")

# Ranges not covered by ipaddress' is_private / is_link_local flags
EXTRA_BLOCKED_NETWORKS = [
    ipaddress.ip_network("100.64.0.0/10"),  # Carrier-grade NAT
    ipaddress.ip_network("0.0.0.0/8"),
]

# Case-insensitive substrings marking a header value as secret
SENSITIVE_HEADER_PATTERNS = ("authorization", "api-key", "token", "secret", "password", "cookie")

MASK = "********"


def is_blocked_ip(ip: IPAddress) -> bool:
    """True for loopback, private, link-local and other non-routable addresses."""
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped:
        ip = ip.ipv4_mapped
    if (
        ip.is_loopback
        or ip.is_private
        or ip.is_link_local
        or ip.is_multicast
        or ip.is_reserved
        or ip.is_unspecified
    ):
        return True
    return any(ip in network for network in EXTRA_BLOCKED_NETWORKS if ip.version == network.version)


def _parse_ip(hostname: str) -> Optional[IPAddress]:
    try:
        return ipaddress.ip_address(hostname)
    except ValueError:
        return None


def validate_monitor_url(url: str, resolve: bool = True) -> None:
    """Validate a monitor URL before any request is made.

    Args:
        url: The URL to validate
        resolve: Also resolve the hostname and check every returned address

    Raises:
        UrlValidationError: If the URL targets a disallowed destination
    """
    try:
        parsed = urlparse(url)
    except ValueError as e:
        raise UrlValidationError(f"Invalid URL format: {e}")

    if parsed.scheme not in ALLOWED_SCHEMES:
        raise UrlValidationError("URL must use HTTP or HTTPS protocol")

    try:
        parsed.port
    except ValueError as e:
        raise UrlValidationError(f"Invalid port in URL: {e}")

    hostname = (parsed.hostname or "").strip().rstrip(".").lower()
    if not hostname:
        raise UrlValidationError("Invalid hostname")

    if hostname in BLOCKED_HOSTNAMES or hostname.endswith(BLOCKED_SUFFIXES):
        raise UrlValidationError("Cannot monitor localhost or internal hostnames")

    literal_ip = _parse_ip(hostname)
    if literal_ip is not None:
        if is_blocked_ip(literal_ip):
            raise UrlValidationError("Cannot monitor localhost or private IP addresses")
        return

    if not resolve:
        return

    try:
        infos = socket.getaddrinfo(hostname, None, proto=socket.IPPROTO_TCP)
    except socket.gaierror as e:
        # Unresolvable is reported by the probe itself as a DNS failure
        logger.debug(f"Could not resolve {hostname} during validation: {e}")
        return

    for info in infos:
        address = _parse_ip(info[4][0].split("%", 1)[0])
        if address is not None and is_blocked_ip(address):
            raise UrlValidationError(
                f"Hostname {hostname} resolves to a private address ({address})"
            )


async def validate_monitor_url_async(url: str, resolve: bool = True) -> None:
    """Run validate_monitor_url off the event loop (DNS resolution blocks)."""
    loop = asyncio.get_running_loop()
    await loop.run_in_executor(None, validate_monitor_url, url, resolve)


def is_sensitive_header(name: str) -> bool:
    lowered = name.lower()
    return any(pattern in lowered for pattern in SENSITIVE_HEADER_PATTERNS)


def mask_headers(headers: Optional[Dict[str, str]]) -> Dict[str, str]:
    """Copy of headers safe to echo back to a caller."""
    if not headers:
        return {}
    return {
        key: MASK if is_sensitive_header(key) else value
        for key, value in headers.items()
    }
