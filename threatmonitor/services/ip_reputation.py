import logging
from typing import Optional

from threatmonitor.core import risk
from threatmonitor.core.fanout import settle_all
from threatmonitor.core.providers import AbuseIPDBClient, GeolocationClient
from threatmonitor.core.types import ScanRequest
from threatmonitor.schemas import IpDetails, IpReputationResponse

logger = logging.getLogger(__name__)


def _text(value) -> Optional[str]:
    return value if isinstance(value, str) and value else None


def _count(value) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return max(0, int(value))


class IpReputationService:
    """AbuseIPDB reputation plus geolocation for one IPv4 address"""

    def __init__(self, abuseipdb: AbuseIPDBClient, geolocation: GeolocationClient, timeout: Optional[float] = None):
        self.abuseipdb = abuseipdb
        self.geolocation = geolocation
        self.timeout = timeout

    async def check(self, request: ScanRequest) -> IpReputationResponse:
        """
        `request.target` is the address to check; `options['submitted_ip']`
        carries the caller's input when a development remap replaced it.
        """
        target_ip = request.target
        submitted_ip = request.options.get('submitted_ip', target_ip)
        
        results = await settle_all({
            'abuseipdb': self.abuseipdb.fetch(target_ip),
            'geolocation': self.geolocation.fetch(target_ip),
        }, timeout=self.timeout)
        
        abuse = results['abuseipdb'].payload
        abuse = abuse if isinstance(abuse, dict) else None
        geo = results['geolocation'].payload
        geo = geo if isinstance(geo, dict) else {}
        
        assessment = risk.assess_ip(abuse)
        abuse = abuse or {}
        
        return IpReputationResponse(
            ip=submitted_ip,
            is_safe=not assessment.is_malicious,
            risk_score=assessment.risk_score,
            country=_text(geo.get('country')) or 'Unknown',
            isp=_text(geo.get('isp')) or 'Unknown',
            threat_type=risk.ip_threat_type(assessment.categories),
            blacklisted=bool(abuse.get('isBlacklisted', False)),
            abuse_confidence=risk.abuse_confidence(abuse),
            details=IpDetails(
                last_reported=_text(abuse.get('lastReportedAt')),
                total_reports=_count(abuse.get('totalReports')),
                country_code=_text(abuse.get('countryCode')) or _text(geo.get('countryCode')),
                usage_type=_text(abuse.get('usageType')),
                proxy=bool(geo.get('proxy', False)),
                hosting=bool(geo.get('hosting', False)),
                actual_ip_checked=target_ip if target_ip != submitted_ip else None
            )
        )
