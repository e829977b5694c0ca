from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import Optional, List, Dict, Any
from datetime import datetime


class CamelModel(BaseModel):
    """Snake_case attributes, camelCase JSON"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

# ==========================================
# 📥 INPUT MODELS
# ==========================================

class DomainIntelRequest(CamelModel):
    domain: Optional[str] = None

class IpReputationRequest(CamelModel):
    ip: Optional[str] = None

class UrlScanRequest(CamelModel):
    url: Optional[str] = None
    capture_screenshot: bool = False

class PortScanRequest(CamelModel):
    host: Optional[str] = None
    ports: Optional[List[int]] = None

# ==========================================
# 🧱 SHARED MODELS
# ==========================================

class DnsRecord(CamelModel):
    type: Optional[int] = None
    value: Optional[str] = None
    ttl: Optional[int] = None

class DnsRecords(CamelModel):
    a: List[DnsRecord] = []
    mx: List[DnsRecord] = []
    txt: List[DnsRecord] = []
    cname: List[DnsRecord] = []
    ns: List[DnsRecord] = []

class WhoisInfo(CamelModel):
    domain: str
    registrar: str = "Unknown"
    registration_date: Optional[str] = None
    expiration_date: Optional[str] = None
    name_servers: List[str] = []
    registrant_org: str = "Unknown"
    registrant_country: str = "Unknown"
    status: List[str] = []

class ThreatIntel(CamelModel):
    is_malicious: bool = False
    risk_score: int = Field(default=0, ge=0, le=100)
    categories: List[str] = []
    last_seen: Optional[str] = None
    sources: List[str] = []

class IpHistoryEntry(CamelModel):
    ip: str = "Unknown"
    first_seen: Optional[str] = None
    last_seen: Optional[str] = None

class HistoricalData(CamelModel):
    ip_history: List[IpHistoryEntry] = []
    ownership_changes: List[Dict[str, Any]] = []

class IpDetails(CamelModel):
    last_reported: Optional[str] = None
    total_reports: int = 0
    country_code: Optional[str] = None
    usage_type: Optional[str] = None
    proxy: bool = False
    hosting: bool = False
    actual_ip_checked: Optional[str] = Field(default=None, alias="actualIPChecked")

class SslInfo(CamelModel):
    valid: bool
    issuer: str = "Unknown"
    expires: Optional[str] = None
    days_until_expiry: Optional[int] = None
    grade: Optional[str] = None
    synthesized: bool = False

class ScanSources(CamelModel):
    phish_tank: Optional[bool] = None
    ssl_labs: str = "not-applicable"

class PortResult(CamelModel):
    port: int
    status: str
    service: str = "Unknown"
    version: Optional[str] = None
    response_time: Optional[int] = None

class PortScanSummary(CamelModel):
    total: int = 0
    open: int = 0
    closed: int = 0
    filtered: int = 0

# ==========================================
# 📤 RESPONSE MODELS
# ==========================================

class DomainIntelResponse(CamelModel):
    domain: str
    whois: WhoisInfo
    dns: DnsRecords
    threat_intel: ThreatIntel
    historical_data: Optional[HistoricalData] = None

class IpReputationResponse(CamelModel):
    ip: str
    is_safe: bool
    risk_score: int = Field(ge=0, le=100)
    country: str = "Unknown"
    isp: str = "Unknown"
    threat_type: Optional[str] = None
    blacklisted: bool = False
    abuse_confidence: int = 0
    details: IpDetails

class UrlScanResponse(CamelModel):
    url: str
    is_safe: bool
    risk_score: int = Field(ge=0, le=100)
    threats: List[str] = []
    screenshot: Optional[str] = None
    ssl: Optional[SslInfo] = None
    scan_sources: ScanSources

class PortScanResponse(CamelModel):
    host: str
    ports: List[PortResult]
    scan_time: datetime
    summary: PortScanSummary
    mode: str
    simulated: bool

class MyIpResponse(CamelModel):
    ip: str
    ip_type: str
    is_localhost: bool
    display_message: str
    timestamp: datetime

class ErrorResponse(BaseModel):
    error: str
    reset_time: Optional[datetime] = Field(default=None, alias="resetTime")
