"""
Risk heuristics.

Pure functions from provider payloads to a RiskAssessment. No I/O and no
clock reads: the current time is passed in by the caller.
"""
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from threatmonitor.core.types import RiskAssessment

BRAND_KEYWORDS = ('bank', 'paypal', 'amazon', 'microsoft', 'google', 'apple')

DOMAIN_MALICIOUS_THRESHOLD = 50
IP_SAFE_MAX_SCORE = 25

# Reported on every domain verdict, whether or not the lookup succeeded
DOMAIN_SOURCES = ('SecurityTrails',)


def clamp_score(score: float) -> int:
    return int(max(0, min(100, round(score))))


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse provider timestamps (ISO-8601 strings, dates, epoch seconds or
    milliseconds) into an aware UTC datetime. Unparseable values give None.
    """
    if value is None or value == "" or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, (int, float)):
        seconds = value / 1000 if value > 1e12 else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        text = value.strip().replace("Z", "+00:00")
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            try:
                parsed = datetime.strptime(text[:10], "%Y-%m-%d")
            except ValueError:
                return None
    else:
        return None
    
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def days_since(value: Any, now: datetime) -> Optional[float]:
    created = parse_timestamp(value)
    if created is None:
        return None
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return (now - created).total_seconds() / 86400


def is_typosquatting(domain: str) -> Optional[str]:
    """Return the impersonated brand keyword, or None"""
    domain_lower = domain.lower()
    for keyword in BRAND_KEYWORDS:
        if keyword in domain_lower and not domain_lower.endswith(f"{keyword}.com"):
            return keyword
    return None


def _history_records(history: Optional[Dict]) -> List[Dict]:
    records = history.get('records') if isinstance(history, dict) else None
    return records if isinstance(records, list) else []


def _subdomain_count(details: Dict) -> int:
    count = details.get('subdomain_count', details.get('subdomains'))
    if isinstance(count, list):
        return len(count)
    if isinstance(count, (int, float)) and not isinstance(count, bool):
        return int(count)
    return 0


def assess_domain(domain: str, details: Optional[Dict], history: Optional[Dict],
                  now: datetime) -> RiskAssessment:
    """
    Score a domain from registration age, DNS history churn, subdomain count
    and brand impersonation. Malicious above 50 (exclusive).
    
    Only the registry details and history feed the score; the WHOIS lookup
    fills the response view but never changes the verdict.
    """
    details = details if isinstance(details, dict) else {}
    score = 0
    categories: List[str] = []
    
    age = days_since(details.get('created_date'), now)
    if age is not None:
        if age < 30:
            score += 30
            categories.append('Recently Registered')
        elif age < 90:
            score += 15
    
    if len(_history_records(history)) > 10:
        score += 20
        categories.append('Frequent DNS Changes')
    
    if _subdomain_count(details) > 100:
        score += 25
        categories.append('Many Subdomains')
    
    if is_typosquatting(domain):
        score += 40
        categories.append('Potential Typosquatting')
    
    risk_score = clamp_score(score)
    return RiskAssessment(
        risk_score=risk_score,
        is_malicious=risk_score > DOMAIN_MALICIOUS_THRESHOLD,
        categories=tuple(categories),
        contributing_sources=DOMAIN_SOURCES
    )


def abuse_confidence(abuse: Optional[Dict]) -> int:
    abuse = abuse or {}
    raw = abuse.get('abuseConfidenceScore', abuse.get('abuseConfidencePercentage', 0))
    try:
        return clamp_score(float(raw or 0))
    except (TypeError, ValueError):
        return 0


def assess_ip(abuse: Optional[Dict]) -> RiskAssessment:
    """
    The abuse-confidence percentage is the score, unweighted. Safe means not
    blacklisted, not malware and score <= 25.
    """
    if not abuse:
        return RiskAssessment(risk_score=0, is_malicious=False)
    
    score = abuse_confidence(abuse)
    categories: List[str] = []
    if abuse.get('isBlacklisted'):
        categories.append('Blacklisted')
    if str(abuse.get('usageType') or '').lower() == 'malware':
        categories.append('Malware')
    
    is_safe = not categories and score <= IP_SAFE_MAX_SCORE
    return RiskAssessment(
        risk_score=score,
        is_malicious=not is_safe,
        categories=tuple(categories),
        contributing_sources=('AbuseIPDB',)
    )


def ip_threat_type(categories) -> Optional[str]:
    if 'Malware' in categories:
        return 'Malware Distribution'
    if 'Blacklisted' in categories:
        return 'Blacklisted IP'
    return None


def is_confirmed_phish(phish: Optional[Dict]) -> bool:
    if not phish:
        return False
    verified = phish.get('verified')
    if isinstance(verified, str):
        verified = verified.lower() in ('y', 'yes', 'true')
    return bool(phish.get('in_database')) and bool(verified)


def assess_url(url: str, phish: Optional[Dict], ssl: Optional[Dict]) -> RiskAssessment:
    """
    +80 for a verified PhishTank entry, +30 for an https URL whose
    certificate is invalid or could not be checked. Only a confirmed phish
    marks the URL malicious.
    """
    score = 0
    categories: List[str] = []
    sources: List[str] = []
    if phish is not None:
        sources.append('PhishTank')
    if ssl is not None:
        sources.append('SSL Labs')
    
    phishing = is_confirmed_phish(phish)
    if phishing:
        score += 80
        categories.append('Phishing')
    
    if url.lower().startswith('https://') and (not ssl or not ssl.get('valid')):
        score += 30
        categories.append('Invalid SSL Certificate')
    
    return RiskAssessment(
        risk_score=clamp_score(score),
        is_malicious=phishing,
        categories=tuple(categories),
        contributing_sources=tuple(sources)
    )
