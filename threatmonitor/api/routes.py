import logging

from fastapi import APIRouter, Depends, Request

from threatmonitor.api.auth import get_current_user_id
from threatmonitor.core import validators
from threatmonitor.core.errors import RateLimitError, ThreatMonitorError
from threatmonitor.core.types import ScanRequest, TargetType
from threatmonitor.schemas import (
    DomainIntelRequest, DomainIntelResponse,
    IpReputationRequest, IpReputationResponse,
    UrlScanRequest, UrlScanResponse,
    PortScanRequest, PortScanResponse,
    MyIpResponse, ErrorResponse,
)
from threatmonitor.services.domain_intel import DomainIntelService
from threatmonitor.services.ip_reputation import IpReputationService
from threatmonitor.services.my_ip import describe_client_ip
from threatmonitor.services.url_safety import UrlSafetyService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/threat-monitor",
    responses={status: {"model": ErrorResponse} for status in (400, 401, 429, 500, 503)}
)

# ============================================================================
# DEPENDENCIES
# ============================================================================

def rate_limited(endpoint: str, message: str):
    """Dependency factory: resolve the caller, then spend today's call for `endpoint`"""
    async def dependency(request: Request, user_id: str = Depends(get_current_user_id)) -> str:
        decision = await request.app.state.rate_limiter.check_and_consume(user_id, endpoint)
        if not decision.allowed:
            raise RateLimitError(message, reset_time=decision.reset_time)
        return user_id
    return dependency


def _unexpected(action: str, exc: Exception) -> ThreatMonitorError:
    logger.exception(f"❌ {action} error: {exc}")
    return ThreatMonitorError(f"Failed to {action}", 500)

# ============================================================================
# SCAN ENDPOINTS
# ============================================================================

@router.post("/domain-intel", response_model=DomainIntelResponse)
async def domain_intel(
    body: DomainIntelRequest,
    request: Request,
    user_id: str = Depends(rate_limited("domain-intel", "Rate limit exceeded: You can only analyze domains once per day"))
):
    """WHOIS, DNS, history and risk for one domain"""
    domain = validators.validate_domain(body.domain)
    state = request.app.state
    
    try:
        service = DomainIntelService(
            state.providers.require('security_trails'),
            state.providers.require('whois'),
            state.providers.require('dns'),
            timeout=state.settings.PROVIDER_TIMEOUT_SECONDS
        )
        return await service.analyze(ScanRequest(TargetType.DOMAIN, domain, user_id))
    except ThreatMonitorError:
        raise
    except Exception as e:
        raise _unexpected("analyze domain", e)


@router.post("/ip-reputation", response_model=IpReputationResponse)
async def ip_reputation(
    body: IpReputationRequest,
    request: Request,
    user_id: str = Depends(rate_limited("ip-reputation", "Rate limit exceeded: You can only check IP reputation once per day"))
):
    state = request.app.state
    submitted_ip, target_ip = validators.validate_ipv4(body.ip, development=state.settings.is_development)
    
    try:
        service = IpReputationService(
            state.providers.require('abuseipdb'),
            state.providers.require('geolocation'),
            timeout=state.settings.PROVIDER_TIMEOUT_SECONDS
        )
        return await service.check(ScanRequest(
            TargetType.IP, target_ip, user_id, options={'submitted_ip': submitted_ip}
        ))
    except ThreatMonitorError:
        raise
    except Exception as e:
        raise _unexpected("check IP reputation", e)


@router.post("/url-scan", response_model=UrlScanResponse)
async def url_scan(
    body: UrlScanRequest,
    request: Request,
    user_id: str = Depends(rate_limited("url-scan", "Rate limit exceeded: You can only scan URLs once per day"))
):
    url = validators.validate_url(body.url)
    state = request.app.state
    
    try:
        service = UrlSafetyService(
            state.providers.require('phishtank'),
            state.providers.require('ssl'),
            screenshot=state.providers.get('screenshot'),
            timeout=state.settings.PROVIDER_TIMEOUT_SECONDS
        )
        return await service.scan(ScanRequest(
            TargetType.URL, url, user_id, options={'capture_screenshot': body.capture_screenshot}
        ))
    except ThreatMonitorError:
        raise
    except Exception as e:
        raise _unexpected("scan URL", e)


@router.post("/port-scan", response_model=PortScanResponse)
async def port_scan(
    body: PortScanRequest,
    request: Request,
    user_id: str = Depends(rate_limited("port-scan", "Rate limit exceeded: You can only perform port scans once per day"))
):
    scanner = request.app.state.port_scanner
    host = validators.validate_host(body.host)
    ports = validators.validate_ports(body.ports, scanner.max_ports)
    
    try:
        return await scanner.scan(ScanRequest(TargetType.HOST_PORTS, host, user_id, options={'ports': ports}))
    except ThreatMonitorError:
        raise
    except Exception as e:
        raise _unexpected("perform port scan", e)


@router.get("/my-ip", response_model=MyIpResponse)
async def my_ip(request: Request, user_id: str = Depends(get_current_user_id)):
    peer = request.client.host if request.client else None
    return describe_client_ip(request.headers, peer)
