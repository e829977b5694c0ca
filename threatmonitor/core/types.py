from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class TargetType(Enum):
    DOMAIN = "domain"
    IP = "ip"
    URL = "url"
    HOST_PORTS = "host_ports"


@dataclass(frozen=True)
class ScanRequest:
    """One inbound scan, discarded once the response is built"""
    target_type: TargetType
    target: str
    requesting_user_id: str
    options: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ProviderResult:
    """Settled outcome of one provider call: a payload or a failure reason"""
    provider: str
    payload: Any = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class RiskAssessment:
    risk_score: int
    is_malicious: bool
    categories: Tuple[str, ...] = ()
    contributing_sources: Tuple[str, ...] = ()
