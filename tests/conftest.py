"""
Pytest configuration and fixtures
"""
import base64
import json
import random
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from threatmonitor.config import Settings
from threatmonitor.core.providers import Providers
from threatmonitor.core.rate_limiter import RateLimiter
from threatmonitor.database import Base
from threatmonitor.main import create_app
from threatmonitor.services.port_scan import PortScanService
import threatmonitor.models  # noqa: F401

from fakes import FakeClient, FakeDns, FakeSecurityTrails

# Fixed server-local "now" for the rate limiter
FIXED_NOW = datetime(2024, 5, 14, 15, 30, 0)


async def no_sleep(_seconds):
    return None


def make_token(sub="user_123"):
    """Unsigned JWT carrying only a `sub` claim"""
    def segment(data):
        return base64.urlsafe_b64encode(json.dumps(data).encode()).decode().rstrip("=")
    return f"{segment({'alg': 'none'})}.{segment({'sub': sub})}.signature"


def auth_headers(sub="user_123"):
    return {"Authorization": f"Bearer {make_token(sub)}"}


@pytest.fixture
def settings():
    return Settings(
        DATABASE_URL="sqlite://",
        ENVIRONMENT="production",
        SECURITYTRAILS_API_KEY="st-test-key",
        ABUSEIPDB_API_KEY="abuse-test-key",
        PROVIDER_TIMEOUT_SECONDS=2,
        SIMULATED_DELAY_MIN_MS=0,
        SIMULATED_DELAY_MAX_MS=0,
    )


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def rate_limiter(session_factory):
    return RateLimiter(session_factory, clock=lambda: FIXED_NOW)


@pytest.fixture
def provider_clients():
    """Healthy fakes for every provider; tests mutate them to inject failures"""
    ten_days_ago = (datetime.now(timezone.utc) - timedelta(days=10)).isoformat()
    return {
        'security_trails': FakeSecurityTrails(
            details={
                'hostname': 'example.org',
                'created_date': ten_days_ago,
                'registrar_name': 'Example Registrar',
                'subdomain_count': 3,
                'current_dns': {'ns': {'values': [{'nameserver': 'ns1.example.org'}]}},
            },
            history={'records': [
                {'values': [{'ip': f'93.184.216.{i}'}], 'first_seen': '2024-01-01', 'last_seen': '2024-02-01'}
                for i in range(15)
            ]},
        ),
        'whois': FakeClient(payload={
            'registrar': 'Whois Registrar',
            'creationDate': None,
            'expirationDate': '2030-01-01',
            'registrantOrg': 'Example Org',
            'registrantCountry': 'US',
            'status': ['clientTransferProhibited'],
        }),
        'dns': FakeDns(payload={
            'a': [{'type': 1, 'value': '93.184.216.34', 'ttl': 300}],
            'mx': [], 'txt': [], 'cname': [],
            'ns': [{'type': 2, 'value': 'ns-dns.example.org.', 'ttl': 300}],
        }),
        'abuseipdb': FakeClient(payload={
            'ipAddress': '8.8.8.8',
            'abuseConfidenceScore': 0,
            'isBlacklisted': False,
            'usageType': 'Content Delivery Network',
            'countryCode': 'US',
            'totalReports': 0,
            'lastReportedAt': None,
        }),
        'geolocation': FakeClient(payload={
            'status': 'success', 'country': 'United States', 'countryCode': 'US',
            'isp': 'Google LLC', 'proxy': False, 'hosting': True,
        }),
        'phishtank': FakeClient(payload={'url': 'https://example.org/', 'in_database': False}),
        'ssl': FakeClient(payload={
            'valid': True, 'issuer': 'R3', 'expires': '2030-01-01T00:00:00+00:00',
            'daysUntilExpiry': 2000, 'grade': 'A',
        }),
    }


@pytest.fixture
def port_scanner():
    return PortScanService(rng=random.Random(7), sleep=no_sleep, delay_range_ms=(0, 0))


@pytest.fixture
def app(settings, provider_clients, rate_limiter, port_scanner):
    return create_app(
        settings=settings,
        providers=Providers(provider_clients),
        rate_limiter=rate_limiter,
        port_scanner=port_scanner,
    )


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client
