"""
Provider clients for the external intelligence sources.

Each client wraps one HTTP API with a pooled requests.Session. Blocking
calls are pushed to a worker thread so orchestrators can await them
concurrently. Any transport failure or non-2xx status raises ProviderError.
"""
import asyncio
import base64
import logging
import math
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional
from urllib.parse import quote, urlparse

import requests

from threatmonitor.core.errors import ConfigurationError, ProviderError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10
DEFAULT_USER_AGENT = "echoray-threat-monitor/1.0"


class BaseProvider:
    """
    Base class for provider clients.
    
    Subclasses set `name`, `base_url` and, when the API needs a credential,
    `api_key_setting`. Construction fails fast when that credential is absent.
    """
    name = "base"
    base_url = ""
    api_key_setting: Optional[str] = None

    def __init__(self, api_key: Optional[str] = None, timeout: float = DEFAULT_TIMEOUT,
                 user_agent: str = DEFAULT_USER_AGENT, session: Optional[requests.Session] = None):
        if self.api_key_setting and not api_key:
            raise ConfigurationError(f"{self.api_key_setting} environment variable is required")
        self.api_key = api_key
        self.timeout = timeout
        
        # Reuse TCP connections for all calls to this provider
        self.http_session = session or requests.Session()
        self.http_session.headers.update({'User-Agent': user_agent})

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        try:
            response = self.http_session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.Timeout:
            raise ProviderError(self.name, "request timeout")
        except requests.RequestException as e:
            raise ProviderError(self.name, f"request error: {e}")
        
        status = response.status_code
        if not 200 <= status < 300:
            if status == 429:
                reason = "rate limit exceeded"
            elif status in (401, 403):
                reason = "authentication failed"
            else:
                reason = f"unexpected status {status}"
            raise ProviderError(self.name, reason, status=status)
        return response

    def _json(self, response: requests.Response):
        try:
            return response.json()
        except ValueError:
            raise ProviderError(self.name, "invalid JSON response", status=response.status_code)

    def _get_json(self, url: str, **kwargs):
        return self._json(self._request("GET", url, **kwargs))

    def _object(self, data) -> Dict:
        if not isinstance(data, dict):
            raise ProviderError(self.name, f"unexpected payload: expected an object, got {type(data).__name__}")
        return data

    def _get_object(self, url: str, **kwargs) -> Dict:
        return self._object(self._get_json(url, **kwargs))

    async def _call(self, fn, *args):
        return await asyncio.to_thread(fn, *args)

    async def fetch(self, target: str):
        """Query the provider for one target"""
        raise NotImplementedError

    def close(self):
        self.http_session.close()


class SecurityTrailsClient(BaseProvider):
    """Domain details (registration metadata) and A-record history"""
    name = "SecurityTrails"
    base_url = "https://api.securitytrails.com/v1"
    api_key_setting = "SECURITYTRAILS_API_KEY"

    def _headers(self) -> Dict[str, str]:
        return {'APIKEY': self.api_key, 'Accept': 'application/json'}

    def get_domain_details(self, domain: str) -> Dict:
        return self._get_object(f"{self.base_url}/domain/{domain}", headers=self._headers())

    def get_domain_history(self, domain: str) -> Dict:
        data = self._get_object(f"{self.base_url}/history/{domain}/dns/a", headers=self._headers())
        if not isinstance(data.get('records', []), list):
            raise ProviderError(self.name, "unexpected payload: records is not a list")
        return data

    async def domain_details(self, domain: str) -> Dict:
        return await self._call(self.get_domain_details, domain)

    async def domain_history(self, domain: str) -> Dict:
        return await self._call(self.get_domain_history, domain)

    async def fetch(self, target: str) -> Dict:
        return await self.domain_details(target)


class WhoisClient(BaseProvider):
    """Dedicated WHOIS lookup; a token is optional for this API"""
    name = "WHOIS"
    base_url = "https://api.whoisjson.com/v1"

    def lookup(self, domain: str) -> Dict:
        headers = {'Accept': 'application/json'}
        if self.api_key:
            headers['Authorization'] = f"Token={self.api_key}"
        data = self._get_object(f"{self.base_url}/{domain}", headers=headers)
        return self.parse(data)

    @staticmethod
    def parse(data: Dict) -> Dict:
        registrar = data.get('registrar')
        if isinstance(registrar, dict):
            registrar = registrar.get('name')
        registrant = data.get('registrant') or {}
        status = data.get('status')
        if isinstance(status, str):
            status = [status]
        return {
            'registrar': registrar or None,
            'creationDate': data.get('created_date') or data.get('created'),
            'expirationDate': data.get('expires_date') or data.get('expires'),
            'registrantOrg': registrant.get('organization') if isinstance(registrant, dict) else None,
            'registrantCountry': registrant.get('country') if isinstance(registrant, dict) else None,
            'status': status or None,
        }

    async def fetch(self, target: str) -> Dict:
        return await self._call(self.lookup, target)


class AbuseIPDBClient(BaseProvider):
    """IP abuse confidence, blacklist flag and usage type"""
    name = "AbuseIPDB"
    base_url = "https://api.abuseipdb.com/api/v2"
    api_key_setting = "ABUSEIPDB_API_KEY"

    def check_ip(self, ip: str) -> Dict:
        headers = {
            'Key': self.api_key,
            'Accept': 'application/json'
        }
        params = {
            'ipAddress': ip,
            'maxAgeInDays': '90',
            'verbose': 'true'
        }
        data = self._get_object(f"{self.base_url}/check", headers=headers, params=params)
        return self._object(data.get('data') or {})

    async def fetch(self, target: str) -> Dict:
        return await self._call(self.check_ip, target)


class PhishTankClient(BaseProvider):
    """Phishing URL lookup (no credential)"""
    name = "PhishTank"
    base_url = "http://checkurl.phishtank.com/checkurl/"

    def check_url(self, url: str) -> Dict:
        response = self._request("POST", self.base_url, data={'url': url, 'format': 'json'})
        return self._object(self._object(self._json(response)).get('results') or {})

    async def fetch(self, target: str) -> Dict:
        return await self._call(self.check_url, target)


class SSLLabsClient(BaseProvider):
    """
    Certificate grade, issuer and expiry from SSL Labs' cached analyses.
    
    While an analysis is missing or still running the client answers with a
    synthesized "assume valid, 365 days" result flagged `synthesized`.
    """
    name = "SSL Labs"
    base_url = "https://api.ssllabs.com/api/v3/analyze"

    def analyze(self, url: str) -> Optional[Dict]:
        if not url.lower().startswith('https://'):
            return None
        hostname = urlparse(url).hostname
        params = {
            'host': hostname,
            'publish': 'off',
            'startNew': 'off',
            'fromCache': 'on',
            'maxAge': '24'
        }
        data = self._get_object(self.base_url, params=params)
        return self.parse(data, datetime.now(timezone.utc))

    @staticmethod
    def parse(data: Dict, now: datetime) -> Dict:
        endpoints = data.get('endpoints') or []
        if data.get('status') == 'READY' and endpoints:
            endpoint = endpoints[0]
            cert = (endpoint.get('details') or {}).get('cert')
            if cert and cert.get('notAfter'):
                expiry = datetime.fromtimestamp(cert['notAfter'] / 1000, tz=timezone.utc)
                days_left = (expiry - now).total_seconds() / 86400
                return {
                    'valid': endpoint.get('grade') != 'F' and not cert.get('expired', days_left < 0),
                    'issuer': cert.get('issuerSubject') or 'Unknown',
                    'expires': expiry.isoformat(),
                    'daysUntilExpiry': math.ceil(days_left),
                    'grade': endpoint.get('grade'),
                }
        
        logger.info(f"SSL Labs analysis not ready (status={data.get('status')}), assuming valid certificate")
        return SSLLabsClient.synthesized(now)

    @staticmethod
    def synthesized(now: datetime) -> Dict:
        return {
            'valid': True,
            'issuer': 'Unknown',
            'expires': (now + timedelta(days=365)).isoformat(),
            'daysUntilExpiry': 365,
            'grade': None,
            'synthesized': True,
        }

    async def fetch(self, target: str) -> Optional[Dict]:
        return await self._call(self.analyze, target)


class GeolocationClient(BaseProvider):
    """Country, ISP and hosting/proxy flags from ip-api.com"""
    name = "IP Geolocation"
    base_url = "http://ip-api.com/json"
    fields = "status,message,country,countryCode,regionName,city,isp,org,as,mobile,proxy,hosting"

    def locate(self, ip: str) -> Dict:
        data = self._get_object(f"{self.base_url}/{ip}", params={'fields': self.fields})
        if data.get('status') == 'fail':
            raise ProviderError(self.name, data.get('message') or 'lookup failed')
        return data

    async def fetch(self, target: str) -> Dict:
        return await self._call(self.locate, target)


class DnsOverHttpsResolver(BaseProvider):
    """Cloudflare DNS-over-HTTPS, one query per record type"""
    name = "DNS"
    base_url = "https://cloudflare-dns.com/dns-query"
    record_types = ('A', 'MX', 'TXT', 'CNAME', 'NS')

    def resolve(self, domain: str, record_type: str) -> List[Dict]:
        data = self._get_object(
            self.base_url,
            params={'name': domain, 'type': record_type},
            headers={'Accept': 'application/dns-json'}
        )
        answers = data.get('Answer') or []
        if not isinstance(answers, list):
            raise ProviderError(self.name, f"unexpected payload: Answer is {type(answers).__name__}")
        return [
            {'type': answer.get('type'), 'value': answer.get('data'), 'ttl': answer.get('TTL')}
            for answer in answers if isinstance(answer, dict)
        ]

    @classmethod
    def empty(cls) -> Dict[str, List[Dict]]:
        return {record_type.lower(): [] for record_type in cls.record_types}

    async def lookup(self, domain: str) -> Dict[str, List[Dict]]:
        """All record types keyed by lowercase type name; a failed type stays empty"""
        answers = await asyncio.gather(
            *(self._call(self.resolve, domain, rtype) for rtype in self.record_types),
            return_exceptions=True
        )
        results = self.empty()
        for rtype, answer in zip(self.record_types, answers):
            if isinstance(answer, Exception):
                logger.warning(f"⚠️ DNS lookup error for {rtype}: {answer}")
                continue
            results[rtype.lower()] = answer
        return results

    async def fetch(self, target: str) -> Dict[str, List[Dict]]:
        return await self.lookup(target)


class ScreenshotClient(BaseProvider):
    """Renders a page through a screenshot service URL template containing {url}"""
    name = "Screenshot"

    def __init__(self, service_url: str, **kwargs):
        super().__init__(**kwargs)
        self.service_url = service_url

    def capture(self, url: str) -> str:
        response = self._request("GET", self.service_url.format(url=quote(url, safe='')))
        content_type = response.headers.get('Content-Type', 'image/png').split(';')[0]
        encoded = base64.b64encode(response.content).decode()
        return f"data:{content_type};base64,{encoded}"

    async def fetch(self, target: str) -> str:
        return await self._call(self.capture, target)


class Providers:
    """
    Provider clients built once at startup.
    
    A client that could not be constructed is remembered with its
    ConfigurationError so only the endpoints that need it answer 503.
    """

    def __init__(self, clients: Dict[str, BaseProvider], config_errors: Optional[Dict[str, ConfigurationError]] = None):
        self._clients = dict(clients)
        self._config_errors = dict(config_errors or {})

    def require(self, key: str) -> BaseProvider:
        if key in self._clients:
            return self._clients[key]
        raise self._config_errors.get(key) or ConfigurationError(f"Provider '{key}' is not configured")

    def get(self, key: str) -> Optional[BaseProvider]:
        return self._clients.get(key)

    @property
    def unavailable(self) -> List[str]:
        return sorted(self._config_errors)

    def close(self):
        for client in self._clients.values():
            client.close()


def build_providers(settings) -> Providers:
    """Construct every provider client from settings"""
    common = {'timeout': settings.PROVIDER_TIMEOUT_SECONDS, 'user_agent': settings.USER_AGENT}
    factories = {
        'security_trails': lambda: SecurityTrailsClient(api_key=settings.SECURITYTRAILS_API_KEY, **common),
        'whois': lambda: WhoisClient(api_key=settings.WHOISJSON_API_KEY, **common),
        'abuseipdb': lambda: AbuseIPDBClient(api_key=settings.ABUSEIPDB_API_KEY, **common),
        'phishtank': lambda: PhishTankClient(**common),
        'ssl': lambda: SSLLabsClient(**common),
        'geolocation': lambda: GeolocationClient(**common),
        'dns': lambda: DnsOverHttpsResolver(**common),
    }
    if settings.SCREENSHOT_SERVICE_URL:
        factories['screenshot'] = lambda: ScreenshotClient(settings.SCREENSHOT_SERVICE_URL, **common)
    
    clients: Dict[str, BaseProvider] = {}
    errors: Dict[str, ConfigurationError] = {}
    for key, factory in factories.items():
        try:
            clients[key] = factory()
        except ConfigurationError as e:
            logger.warning(f"⚠️ {key} provider disabled: {e.message}")
            errors[key] = e
    
    logger.info(f"✓ Providers ready: {', '.join(sorted(clients))}")
    return Providers(clients, errors)
