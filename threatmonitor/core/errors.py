"""
Error taxonomy for the threat-monitor service.

Every error that may reach a caller carries the HTTP status it maps to.
ProviderError never reaches a caller: orchestrators catch it per provider
and record the provider's contribution as absent.
"""
from datetime import datetime
from typing import Optional


class ThreatMonitorError(Exception):
    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ConfigurationError(ThreatMonitorError):
    """A required provider credential is missing"""
    status_code = 503
    public_message = "Service temporarily unavailable"


class ValidationError(ThreatMonitorError):
    """Malformed scan target"""
    status_code = 400


class AuthenticationError(ThreatMonitorError):
    status_code = 401

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


class RateLimitError(ThreatMonitorError):
    status_code = 429

    def __init__(self, message: str, reset_time: Optional[datetime] = None):
        super().__init__(message)
        self.reset_time = reset_time


class ProviderError(ThreatMonitorError):
    """A single upstream intelligence source failed"""
    status_code = 502

    def __init__(self, provider: str, reason: str, status: Optional[int] = None):
        super().__init__(f"{provider} error: {reason}")
        self.provider = provider
        self.reason = reason
        self.status = status
