"""
URL safety: PhishTank lookup and SSL certificate analysis in parallel, an
optional screenshot for URLs that look safe enough.
"""
import logging
from typing import Optional

from threatmonitor.core import risk
from threatmonitor.core.fanout import settle_all
from threatmonitor.core.providers import PhishTankClient, SSLLabsClient, ScreenshotClient
from threatmonitor.core.types import ScanRequest
from threatmonitor.schemas import ScanSources, SslInfo, UrlScanResponse

logger = logging.getLogger(__name__)

SCREENSHOT_MAX_RISK = 50


def _ssl_status(url: str, ssl_result) -> str:
    if not url.lower().startswith('https://'):
        return 'not-applicable'
    if not ssl_result.ok or not ssl_result.payload:
        return 'unavailable'
    return 'valid' if ssl_result.payload.get('valid') else 'invalid'


class UrlSafetyService:
    def __init__(self, phishtank: PhishTankClient, ssl: SSLLabsClient,
                 screenshot: Optional[ScreenshotClient] = None, timeout: Optional[float] = None):
        self.phishtank = phishtank
        self.ssl = ssl
        self.screenshot = screenshot
        self.timeout = timeout

    async def scan(self, request: ScanRequest) -> UrlScanResponse:
        url = request.target
        
        results = await settle_all({
            'phishtank': self.phishtank.fetch(url),
            'ssl': self.ssl.fetch(url),
        }, timeout=self.timeout)
        
        phish = results['phishtank'].payload
        ssl_data = results['ssl'].payload
        assessment = risk.assess_url(url, phish, ssl_data)
        
        screenshot = None
        if request.options.get('capture_screenshot') and assessment.risk_score < SCREENSHOT_MAX_RISK:
            screenshot = await self._capture(url)
        
        return UrlScanResponse(
            url=url,
            is_safe=not assessment.is_malicious,
            risk_score=assessment.risk_score,
            threats=list(assessment.categories),
            screenshot=screenshot,
            ssl=SslInfo(**ssl_data) if ssl_data else None,
            scan_sources=ScanSources(
                phish_tank=risk.is_confirmed_phish(phish) if results['phishtank'].ok else None,
                ssl_labs=_ssl_status(url, results['ssl'])
            )
        )

    async def _capture(self, url: str) -> Optional[str]:
        if self.screenshot is None:
            return None
        outcome = (await settle_all({'screenshot': self.screenshot.fetch(url)}, timeout=self.timeout))['screenshot']
        return outcome.payload
