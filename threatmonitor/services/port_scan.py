"""
Port scanning.

Two modes:
    - simulated (default): NO network traffic. Port states are drawn from a
      weighted random model with an artificial per-port delay. Demo output
      only, never a security finding; responses carry `simulated: true`.
    - tcp: real asyncio TCP connect scan against the resolved address, with
      a per-port connect timeout. Private and reserved targets are refused.
"""
import asyncio
import logging
import random
import socket
from datetime import datetime, timezone
from typing import Awaitable, Callable, List, Optional

from threatmonitor.core import validators
from threatmonitor.core.errors import ValidationError
from threatmonitor.core.types import ScanRequest
from threatmonitor.schemas import PortResult, PortScanResponse, PortScanSummary

logger = logging.getLogger(__name__)

SIMULATED = "simulated"
TCP = "tcp"

COMMON_SERVICES = {
    21: 'FTP',
    22: 'SSH',
    23: 'Telnet',
    25: 'SMTP',
    53: 'DNS',
    80: 'HTTP',
    110: 'POP3',
    143: 'IMAP',
    443: 'HTTPS',
    993: 'IMAPS',
    995: 'POP3S',
    3389: 'RDP',
    5432: 'PostgreSQL',
    3306: 'MySQL',
    1433: 'MSSQL',
    27017: 'MongoDB',
}

# Simulation weights
LIKELY_OPEN_PORTS = {80, 443, 22, 25, 53}
WELL_KNOWN_PORTS = {21, 23, 110, 143, 993, 995}
SIMULATED_VERSIONS = {
    80: 'Apache/2.4.41 or nginx/1.18.0',
    443: 'Apache/2.4.41 or nginx/1.18.0',
    22: 'OpenSSH 8.0',
    25: 'Postfix',
    53: 'BIND 9.11',
}


def simulated_status(port: int, roll: float) -> str:
    """Map a uniform [0, 1) roll to a port state using the simulation weights"""
    if port in LIKELY_OPEN_PORTS:
        return 'open' if roll > 0.3 else 'closed'
    if port in WELL_KNOWN_PORTS:
        return 'open' if roll > 0.7 else 'closed'
    if roll > 0.95:
        return 'open'
    if roll > 0.8:
        return 'filtered'
    return 'closed'


def summarize(ports: List[PortResult]) -> PortScanSummary:
    return PortScanSummary(
        total=len(ports),
        open=sum(1 for p in ports if p.status == 'open'),
        closed=sum(1 for p in ports if p.status == 'closed'),
        filtered=sum(1 for p in ports if p.status == 'filtered')
    )


class PortScanService:
    def __init__(self, mode: str = SIMULATED, max_ports: int = validators.DEFAULT_MAX_PORTS,
                 connect_timeout: float = 1.5, delay_range_ms=(500, 1500),
                 rng: Optional[random.Random] = None,
                 sleep: Callable[[float], Awaitable] = asyncio.sleep):
        if mode not in (SIMULATED, TCP):
            raise ValueError(f"Unknown port scan mode: {mode}")
        self.mode = mode
        self.max_ports = max_ports
        self.connect_timeout = connect_timeout
        self.delay_range_ms = delay_range_ms
        self.rng = rng or random.Random()
        self.sleep = sleep

    async def scan(self, request: ScanRequest) -> PortScanResponse:
        host = validators.validate_host(request.target)
        ports = validators.validate_ports(request.options.get('ports'), self.max_ports)
        
        if self.mode == TCP:
            address = await self._resolve_public(host)
            results = await asyncio.gather(*(self._probe_tcp(address, port) for port in ports))
        else:
            results = await asyncio.gather(*(self._probe_simulated(port) for port in ports))
        
        results = list(results)
        summary = summarize(results)
        logger.info(f"✓ Port scan ({self.mode}) of {host}: {summary.open}/{summary.total} open")
        
        return PortScanResponse(
            host=host,
            ports=results,
            scan_time=datetime.now(timezone.utc),
            summary=summary,
            mode=self.mode,
            simulated=self.mode == SIMULATED
        )

    # ===== Simulated =====

    async def _probe_simulated(self, port: int) -> PortResult:
        low, high = self.delay_range_ms
        delay_ms = self.rng.uniform(low, high)
        await self.sleep(delay_ms / 1000)
        
        status = simulated_status(port, self.rng.random())
        return PortResult(
            port=port,
            status=status,
            service=COMMON_SERVICES.get(port, 'Unknown'),
            version=SIMULATED_VERSIONS.get(port) if status == 'open' else None,
            response_time=round(delay_ms)
        )

    # ===== TCP connect =====

    async def _resolve_public(self, host: str) -> str:
        loop = asyncio.get_running_loop()
        try:
            infos = await loop.getaddrinfo(host, None, type=socket.SOCK_STREAM)
        except (socket.gaierror, OSError):
            raise ValidationError(f"Could not resolve host '{host}'")
        if not infos:
            raise ValidationError(f"Could not resolve host '{host}'")
        
        addresses = [info[4][0] for info in infos]
        if not all(validators.is_public_address(addr) for addr in addresses):
            logger.warning(f"Port scan blocked: {host} resolves to a private or reserved address")
            raise ValidationError("Target resolves to a private or reserved IP address")
        return addresses[0]

    async def _probe_tcp(self, address: str, port: int) -> PortResult:
        loop = asyncio.get_running_loop()
        started = loop.time()
        try:
            _, writer = await asyncio.wait_for(asyncio.open_connection(address, port), timeout=self.connect_timeout)
        except asyncio.TimeoutError:
            status = 'filtered'
        except ConnectionRefusedError:
            status = 'closed'
        except OSError:
            status = 'filtered'
        else:
            status = 'open'
            writer.close()
            try:
                await writer.wait_closed()
            except OSError:
                pass
        
        return PortResult(
            port=port,
            status=status,
            service=COMMON_SERVICES.get(port, 'Unknown'),
            response_time=round((loop.time() - started) * 1000)
        )
