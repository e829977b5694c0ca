import ipaddress
import logging
from datetime import datetime, timezone
from typing import Mapping, Optional

from threatmonitor.schemas import MyIpResponse

logger = logging.getLogger(__name__)

# More trusted proxy headers first
CLIENT_IP_HEADERS = (
    'cf-connecting-ip',
    'x-real-ip',
    'x-forwarded-for',
    'x-client-ip',
    'x-forwarded',
    'x-cluster-client-ip',
)


def _parse_ip(value: Optional[str]):
    try:
        return ipaddress.ip_address((value or '').strip())
    except ValueError:
        return None


def client_ip_from_headers(headers: Mapping[str, str]) -> Optional[str]:
    """First valid, non-loopback address from the proxy headers"""
    for header in CLIENT_IP_HEADERS:
        value = headers.get(header)
        if not value:
            continue
        if header == 'x-forwarded-for':
            # "client, proxy1, proxy2"
            value = value.split(',')[0]
        addr = _parse_ip(value)
        if addr is not None and not addr.is_loopback:
            logger.debug(f"Client IP from {header}: {addr}")
            return str(addr)
    return None


def describe_client_ip(headers: Mapping[str, str], peer_host: Optional[str],
                       now: Optional[datetime] = None) -> MyIpResponse:
    ip = client_ip_from_headers(headers) or peer_host or '127.0.0.1'
    addr = _parse_ip(ip)
    is_localhost = ip == 'localhost' or (addr is not None and addr.is_loopback)
    
    if is_localhost:
        message = "You are connecting from this machine (localhost); your public IP is not visible."
    elif addr is not None and addr.is_private:
        message = f"Your IP address is {ip} (private network address)"
    else:
        message = f"Your public IP address is {ip}"
    
    return MyIpResponse(
        ip=ip,
        ip_type='IPv6' if ':' in ip else 'IPv4',
        is_localhost=is_localhost,
        display_message=message,
        timestamp=now or datetime.now(timezone.utc)
    )
