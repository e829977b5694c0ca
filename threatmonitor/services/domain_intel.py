"""
Domain intelligence: registry details, A-record history, WHOIS and DNS
fetched concurrently, merged into one response and scored.
"""
import logging
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from threatmonitor.core import risk, validators
from threatmonitor.core.fanout import settle_all
from threatmonitor.core.providers import DnsOverHttpsResolver, SecurityTrailsClient, WhoisClient
from threatmonitor.core.types import ScanRequest
from threatmonitor.schemas import (
    DnsRecord, DnsRecords, DomainIntelResponse, HistoricalData, IpHistoryEntry, ThreatIntel, WhoisInfo
)

logger = logging.getLogger(__name__)


def _mapping(value) -> Dict:
    return value if isinstance(value, dict) else {}


def _records(value) -> List:
    return value if isinstance(value, list) else []


def _text(value) -> Optional[str]:
    if isinstance(value, str):
        return value.strip() or None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return None


def _date_text(value) -> Optional[str]:
    """Provider date as text: strings pass through, epochs and datetimes become ISO-8601"""
    if isinstance(value, str):
        return value.strip() or None
    parsed = risk.parse_timestamp(value)
    return parsed.isoformat() if parsed else None


def _first(*values):
    for value in values:
        if value:
            return value
    return None


def _text_list(value) -> List[str]:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return []
    return [text for text in (_text(item) for item in value) if text]


def build_whois(domain: str, whois: Optional[Dict], details: Optional[Dict], dns: Optional[Dict]) -> WhoisInfo:
    """
    Layered merge: each field comes from the WHOIS provider when it has it,
    else from the registry details, else a placeholder.
    """
    whois = _mapping(whois)
    details = _mapping(details)
    current_ns = _records(_mapping(_mapping(details.get('current_dns')).get('ns')).get('values'))
    detail_ns = _text_list([_mapping(entry).get('nameserver') for entry in current_ns])
    dns_ns = _text_list([_mapping(record).get('value') for record in _records(_mapping(dns).get('ns'))])
    
    return WhoisInfo(
        domain=domain,
        registrar=_first(_text(whois.get('registrar')), _text(details.get('registrar_name')),
                         _text(details.get('registrar'))) or 'Unknown',
        registration_date=_first(_date_text(whois.get('creationDate')), _date_text(details.get('created_date'))),
        expiration_date=_first(_date_text(whois.get('expirationDate')), _date_text(details.get('expires_date'))),
        name_servers=detail_ns or dns_ns,
        registrant_org=_text(whois.get('registrantOrg')) or 'Unknown',
        registrant_country=_text(whois.get('registrantCountry')) or 'Unknown',
        status=_text_list(whois.get('status'))
    )


def _history_ip(values) -> str:
    first = _records(values)[0] if _records(values) else None
    if isinstance(first, dict):
        first = first.get('ip')
    return _text(first) or 'Unknown'


def build_history(history: Optional[Dict]) -> Optional[HistoricalData]:
    if not isinstance(history, dict):
        return None
    entries: List[IpHistoryEntry] = []
    for record in _records(history.get('records')):
        if not isinstance(record, dict):
            continue
        entries.append(IpHistoryEntry(
            ip=_history_ip(record.get('values')),
            first_seen=_date_text(record.get('first_seen')),
            last_seen=_date_text(record.get('last_seen'))
        ))
    return HistoricalData(ip_history=entries, ownership_changes=[])


def build_dns(dns: Optional[Dict]) -> DnsRecords:
    dns = _mapping(dns)
    records = {}
    for record_type in DnsOverHttpsResolver.empty():
        records[record_type] = [
            DnsRecord(
                type=entry.get('type') if isinstance(entry.get('type'), int) else None,
                value=_text(entry.get('value')),
                ttl=entry.get('ttl') if isinstance(entry.get('ttl'), int) else None
            )
            for entry in _records(dns.get(record_type)) if isinstance(entry, dict)
        ]
    return DnsRecords(**records)


class DomainIntelService:
    def __init__(self, security_trails: SecurityTrailsClient, whois: WhoisClient,
                 dns: DnsOverHttpsResolver, timeout: Optional[float] = None,
                 clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc)):
        self.security_trails = security_trails
        self.whois = whois
        self.dns = dns
        self.timeout = timeout
        self.clock = clock

    async def analyze(self, request: ScanRequest) -> DomainIntelResponse:
        domain = validators.validate_domain(request.target)
        
        results = await settle_all({
            'details': self.security_trails.domain_details(domain),
            'history': self.security_trails.domain_history(domain),
            'dns': self.dns.lookup(domain),
            'whois': self.whois.fetch(domain),
        }, timeout=self.timeout)
        
        details = results['details'].payload
        history = results['history'].payload
        dns_data = results['dns'].payload
        whois_data = results['whois'].payload
        
        assessment = risk.assess_domain(domain, details, history, self.clock())
        historical_data = build_history(history)
        ip_history = historical_data.ip_history if historical_data else []
        
        logger.info(f"✓ Domain intel for {domain}: risk={assessment.risk_score} "
                    f"failed={[name for name, r in results.items() if not r.ok]}")
        
        return DomainIntelResponse(
            domain=domain,
            whois=build_whois(domain, whois_data, details, dns_data),
            dns=build_dns(dns_data),
            threat_intel=ThreatIntel(
                is_malicious=assessment.is_malicious,
                risk_score=assessment.risk_score,
                categories=list(assessment.categories),
                last_seen=ip_history[0].last_seen if ip_history else None,
                sources=list(assessment.contributing_sources)
            ),
            historical_data=historical_data
        )
