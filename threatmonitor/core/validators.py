"""
Target validation and normalization for the four scan types.

Each validator returns the normalized target or raises ValidationError with
the message shown to the caller.
"""
import ipaddress
import logging
import re
from typing import Any, List, Optional, Tuple
from urllib.parse import urlparse

from threatmonitor.core.errors import ValidationError

logger = logging.getLogger(__name__)

DOMAIN_RE = re.compile(r"^([a-z0-9]([a-z0-9-]{0,61}[a-z0-9])?\.)+[a-z]{2,63}$", re.IGNORECASE)
IPV4_RE = re.compile(
    r'^(?:(?:25[0-5]|2[0-4][0-9]|[01]?[0-9][0-9]?)\.){3}'
    r'(?:25[0-5]|2[0-4][0-9]|[01]?[0-9][0-9]?)$'
)
HOST_RE = re.compile(r"^[a-zA-Z0-9.-]+$")

LOCALHOST_ALIASES = {"::1", "127.0.0.1", "localhost"}
DEV_PUBLIC_IP = "8.8.8.8"
DEFAULT_MAX_PORTS = 50


def normalize_domain(raw: str) -> str:
    """Lowercase and strip scheme, www., path, query and port"""
    d = (raw or "").strip().lower()
    if "://" in d:
        d = d.split("://", 1)[1]
    d = d.split("/", 1)[0].split("?", 1)[0].split("#", 1)[0].split(":", 1)[0]
    d = d.strip().strip(".")
    if d.startswith("www."):
        d = d[4:]
    return d


def validate_domain(raw: Optional[str]) -> str:
    if not raw or not str(raw).strip():
        raise ValidationError("Domain is required")
    domain = normalize_domain(str(raw))
    if not domain or len(domain) > 253 or not DOMAIN_RE.match(domain):
        raise ValidationError("Invalid domain format")
    return domain


def is_ipv4(value: str) -> bool:
    return bool(IPV4_RE.match(value or ""))


def validate_ipv4(raw: Optional[str], development: bool = False) -> Tuple[str, str]:
    """
    Validate an IPv4 dotted quad.
    
    Returns:
        (ip as submitted, ip to check). They differ only when the development
        localhost remap applies; that remap never runs in production.
    """
    if not raw or not str(raw).strip():
        raise ValidationError("IP address is required")
    submitted = str(raw).strip()
    target = submitted
    
    if development and submitted in LOCALHOST_ALIASES:
        target = DEV_PUBLIC_IP
        logger.warning(f"Development mode: checking {target} instead of localhost address {submitted}")
    
    if not is_ipv4(target):
        raise ValidationError("Invalid IP address format")
    return submitted, target


def validate_url(raw: Optional[str]) -> str:
    if not raw or not str(raw).strip():
        raise ValidationError("URL is required")
    url = str(raw).strip()
    try:
        parsed = urlparse(url)
        # Accessing .port validates the port component
        parsed.port
    except ValueError:
        raise ValidationError("Invalid URL format")
    if not parsed.scheme or not parsed.netloc or not parsed.hostname:
        raise ValidationError("Invalid URL format")
    return url


def validate_host(raw: Optional[str]) -> str:
    if not raw or not str(raw).strip():
        raise ValidationError("Host is required")
    host = str(raw).strip()
    if len(host) > 253 or not HOST_RE.match(host):
        raise ValidationError("Invalid host format")
    return host


def validate_ports(ports: Optional[List[Any]], max_ports: int = DEFAULT_MAX_PORTS) -> List[int]:
    if not ports or not isinstance(ports, list):
        raise ValidationError("Ports array is required")
    if len(ports) > max_ports:
        raise ValidationError(f"Maximum {max_ports} ports allowed per scan")
    
    cleaned: List[int] = []
    for port in ports:
        if isinstance(port, bool) or not isinstance(port, int) or not 1 <= port <= 65535:
            raise ValidationError(f"Invalid port: {port}")
        cleaned.append(port)
    return cleaned


def is_public_address(ip: str) -> bool:
    """False for private, loopback, link-local, reserved and multicast space"""
    try:
        addr = ipaddress.ip_address(ip)
    except ValueError:
        return False
    return addr.is_global and not addr.is_multicast
