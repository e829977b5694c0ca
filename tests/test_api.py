"""
HTTP surface tests through FastAPI's TestClient
"""
import pytest
from fastapi.testclient import TestClient

from threatmonitor.config import Settings
from threatmonitor.core.errors import ConfigurationError
from threatmonitor.core.providers import Providers
from threatmonitor.main import create_app
from threatmonitor.services.domain_intel import DomainIntelService

from conftest import auth_headers
from fakes import down

PRIMARY_ORIGIN = "http://localhost:3000"


# ============================================================================
# SERVICE
# ============================================================================

def test_root(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["version"] == "1.0.0"


def test_health(client):
    data = client.get("/health").json()
    assert data["status"] == "healthy"
    assert data["unavailableProviders"] == []


# ============================================================================
# IDENTITY AND QUOTA
# ============================================================================

@pytest.mark.parametrize("path,body", [
    ("/threat-monitor/domain-intel", {"domain": "example.org"}),
    ("/threat-monitor/ip-reputation", {"ip": "8.8.8.8"}),
    ("/threat-monitor/url-scan", {"url": "https://example.org"}),
    ("/threat-monitor/port-scan", {"host": "example.org", "ports": [80]}),
])
def test_scans_require_identity(client, path, body):
    response = client.post(path, json=body)
    assert response.status_code == 401
    assert response.json() == {"error": "Authentication required"}


def test_malformed_token_is_unauthenticated(client):
    response = client.post(
        "/threat-monitor/domain-intel",
        json={"domain": "example.org"},
        headers={"Authorization": "Bearer not-a-jwt"}
    )
    assert response.status_code == 401


def test_second_scan_same_day_is_rate_limited(client):
    headers = auth_headers("user_quota")
    first = client.post("/threat-monitor/domain-intel", json={"domain": "example.org"}, headers=headers)
    second = client.post("/threat-monitor/domain-intel", json={"domain": "another.org"}, headers=headers)
    
    assert first.status_code == 200
    assert second.status_code == 429
    assert second.json()["error"] == "Rate limit exceeded: You can only analyze domains once per day"
    assert second.json()["resetTime"] == "2024-05-15T00:00:00"
    assert int(second.headers["retry-after"]) >= 0
    assert second.headers["access-control-allow-origin"] == PRIMARY_ORIGIN


def test_quota_is_per_endpoint(client):
    headers = auth_headers("user_multi")
    assert client.post("/threat-monitor/domain-intel", json={"domain": "example.org"}, headers=headers).status_code == 200
    assert client.post("/threat-monitor/ip-reputation", json={"ip": "8.8.8.8"}, headers=headers).status_code == 200


def test_rejected_input_still_spends_quota(client):
    headers = auth_headers("user_typo")
    assert client.post("/threat-monitor/domain-intel", json={"domain": "not a domain"}, headers=headers).status_code == 400
    assert client.post("/threat-monitor/domain-intel", json={"domain": "example.org"}, headers=headers).status_code == 429


# ============================================================================
# DOMAIN INTELLIGENCE
# ============================================================================

def test_domain_intel(client, provider_clients):
    response = client.post(
        "/threat-monitor/domain-intel",
        json={"domain": "https://www.Example.org/about"},
        headers=auth_headers()
    )
    data = response.json()
    
    assert response.status_code == 200
    assert data["domain"] == "example.org"
    assert data["threatIntel"]["riskScore"] == 50
    assert data["threatIntel"]["isMalicious"] is False
    assert data["threatIntel"]["categories"] == ["Recently Registered", "Frequent DNS Changes"]
    assert data["whois"]["registrar"] == "Whois Registrar"
    assert data["whois"]["nameServers"] == ["ns1.example.org"]
    assert data["whois"]["registrantCountry"] == "US"
    assert data["dns"]["a"][0]["value"] == "93.184.216.34"
    assert len(data["historicalData"]["ipHistory"]) == 15
    assert provider_clients['whois'].calls == ["example.org"]


@pytest.mark.parametrize("body,message", [
    ({"domain": "not a domain"}, "Invalid domain format"),
    ({"domain": ""}, "Domain is required"),
    ({}, "Domain is required"),
])
def test_domain_intel_bad_input(client, body, message):
    response = client.post("/threat-monitor/domain-intel", json=body, headers=auth_headers("user_bad_domain"))
    assert response.status_code == 400
    assert response.json() == {"error": message}


def test_malformed_json_is_400(client):
    response = client.post(
        "/threat-monitor/domain-intel",
        content="{not json",
        headers={**auth_headers(), "Content-Type": "application/json"}
    )
    assert response.status_code == 400
    assert response.json()["error"].startswith("Invalid request body")


def test_domain_intel_total_outage_is_200(client, provider_clients):
    trails = provider_clients['security_trails']
    trails.details_error = down("SecurityTrails")
    trails.history_error = down("SecurityTrails")
    provider_clients['whois'].error = down("WHOIS")
    provider_clients['dns'].error = down("DNS")
    
    response = client.post("/threat-monitor/domain-intel", json={"domain": "example.org"}, headers=auth_headers())
    data = response.json()
    
    assert response.status_code == 200
    assert data["whois"]["registrar"] == "Unknown"
    assert data["dns"] == {"a": [], "mx": [], "txt": [], "cname": [], "ns": []}
    assert data["historicalData"] is None
    assert data["threatIntel"]["riskScore"] == 0


def test_unusual_provider_payloads_still_200(client, provider_clients):
    trails = provider_clients['security_trails']
    trails.payload = {'created_date': 1700000000}
    trails.history = {'records': [{'values': ['1.2.3.4']}]}
    provider_clients['dns'].payload = "garbage"
    
    response = client.post("/threat-monitor/domain-intel", json={"domain": "example.org"}, headers=auth_headers())
    data = response.json()
    
    assert response.status_code == 200
    assert data["whois"]["registrationDate"] == "2023-11-14T22:13:20+00:00"
    assert data["historicalData"]["ipHistory"][0]["ip"] == "1.2.3.4"
    assert data["dns"]["a"] == []


def test_unexpected_failure_is_generic_500(client, monkeypatch):
    async def explode(self, request):
        raise RuntimeError("boom")
    
    monkeypatch.setattr(DomainIntelService, "analyze", explode)
    response = client.post("/threat-monitor/domain-intel", json={"domain": "example.org"}, headers=auth_headers())
    
    assert response.status_code == 500
    assert response.json() == {"error": "Failed to analyze domain"}


# ============================================================================
# IP REPUTATION
# ============================================================================

def test_ip_reputation(client):
    response = client.post("/threat-monitor/ip-reputation", json={"ip": "8.8.8.8"}, headers=auth_headers())
    data = response.json()
    
    assert response.status_code == 200
    assert data["ip"] == "8.8.8.8"
    assert data["isSafe"] is True
    assert data["country"] == "United States"
    assert data["details"]["hosting"] is True
    assert data["details"]["actualIPChecked"] is None


@pytest.mark.parametrize("ip", ["::1", "not-an-ip", "localhost"])
def test_ip_reputation_rejects_non_ipv4_in_production(client, ip):
    response = client.post("/threat-monitor/ip-reputation", json={"ip": ip}, headers=auth_headers(f"user_{ip}"))
    assert response.status_code == 400
    assert response.json() == {"error": "Invalid IP address format"}


def test_missing_credential_is_503(settings, provider_clients, rate_limiter, port_scanner):
    clients = {k: v for k, v in provider_clients.items() if k != 'abuseipdb'}
    errors = {'abuseipdb': ConfigurationError("ABUSEIPDB_API_KEY environment variable is required")}
    app = create_app(settings=settings, providers=Providers(clients, errors),
                     rate_limiter=rate_limiter, port_scanner=port_scanner)
    
    with TestClient(app) as client:
        response = client.post("/threat-monitor/ip-reputation", json={"ip": "8.8.8.8"}, headers=auth_headers())
        health = client.get("/health").json()
        domain = client.post("/threat-monitor/domain-intel", json={"domain": "example.org"}, headers=auth_headers())
    
    assert response.status_code == 503
    assert response.json() == {"error": "Service temporarily unavailable"}
    assert health["unavailableProviders"] == ["abuseipdb"]
    assert domain.status_code == 200


@pytest.mark.devmode
def test_development_localhost_conveniences(provider_clients, rate_limiter, port_scanner):
    settings = Settings(DATABASE_URL="sqlite://", ENVIRONMENT="development")
    app = create_app(settings=settings, providers=Providers(provider_clients),
                     rate_limiter=rate_limiter, port_scanner=port_scanner)
    
    with TestClient(app, base_url="http://localhost") as client:
        response = client.post("/threat-monitor/ip-reputation", json={"ip": "127.0.0.1"})
    data = response.json()
    
    assert response.status_code == 200
    assert data["ip"] == "127.0.0.1"
    assert data["details"]["actualIPChecked"] == "8.8.8.8"
    assert provider_clients['abuseipdb'].calls == ["8.8.8.8"]


# ============================================================================
# URL SCAN
# ============================================================================

def test_url_scan(client):
    response = client.post("/threat-monitor/url-scan", json={"url": "https://example.org/"}, headers=auth_headers())
    data = response.json()
    
    assert response.status_code == 200
    assert data["isSafe"] is True
    assert data["riskScore"] == 0
    assert data["ssl"]["grade"] == "A"
    assert data["screenshot"] is None
    assert data["scanSources"] == {"phishTank": False, "sslLabs": "valid"}


def test_url_scan_bad_url(client):
    response = client.post("/threat-monitor/url-scan", json={"url": "example.org"}, headers=auth_headers())
    assert response.status_code == 400
    assert response.json() == {"error": "Invalid URL format"}


def test_url_scan_phishing(client, provider_clients):
    provider_clients['phishtank'].payload = {'in_database': True, 'verified': True}
    data = client.post("/threat-monitor/url-scan", json={"url": "https://example.org/"}, headers=auth_headers()).json()
    
    assert data["isSafe"] is False
    assert data["riskScore"] == 80
    assert data["threats"] == ["Phishing"]


# ============================================================================
# PORT SCAN
# ============================================================================

def test_port_scan_accepts_fifty_ports(client):
    response = client.post(
        "/threat-monitor/port-scan",
        json={"host": "example.org", "ports": list(range(1, 51))},
        headers=auth_headers()
    )
    data = response.json()
    
    assert response.status_code == 200
    assert data["simulated"] is True
    assert data["mode"] == "simulated"
    assert data["summary"]["total"] == 50
    assert {"port", "status", "service", "responseTime"} <= set(data["ports"][0])


def test_port_scan_rejects_fifty_one_ports(client):
    response = client.post(
        "/threat-monitor/port-scan",
        json={"host": "example.org", "ports": list(range(1, 52))},
        headers=auth_headers()
    )
    assert response.status_code == 400
    assert response.json() == {"error": "Maximum 50 ports allowed per scan"}


@pytest.mark.parametrize("body,message", [
    ({"host": "example.org", "ports": []}, "Ports array is required"),
    ({"host": "example.org"}, "Ports array is required"),
    ({"host": "example.org", "ports": [0]}, "Invalid port: 0"),
    ({"host": "bad host!", "ports": [80]}, "Invalid host format"),
])
def test_port_scan_bad_input(client, body, message):
    response = client.post("/threat-monitor/port-scan", json=body, headers=auth_headers("user_bad_ports"))
    assert response.status_code == 400
    assert response.json() == {"error": message}


# ============================================================================
# MY IP
# ============================================================================

def test_my_ip_requires_identity(client):
    assert client.get("/threat-monitor/my-ip").status_code == 401


def test_my_ip_is_not_rate_limited(client):
    headers = {**auth_headers(), "cf-connecting-ip": "81.2.69.160"}
    first = client.get("/threat-monitor/my-ip", headers=headers)
    second = client.get("/threat-monitor/my-ip", headers=headers)
    
    assert first.status_code == second.status_code == 200
    assert first.json()["ip"] == "81.2.69.160"
    assert first.json()["ipType"] == "IPv4"
    assert first.json()["isLocalhost"] is False


# ============================================================================
# CORS
# ============================================================================

def test_allowed_origin_is_echoed(client):
    response = client.get("/health", headers={"Origin": "https://app.echoray.io"})
    assert response.headers["access-control-allow-origin"] == "https://app.echoray.io"
    assert response.headers["access-control-allow-credentials"] == "true"
    assert response.headers["vary"] == "Origin"


def test_unknown_origin_gets_primary(client):
    response = client.get("/health", headers={"Origin": "https://evil.example"})
    assert response.headers["access-control-allow-origin"] == PRIMARY_ORIGIN


def test_preflight(client):
    response = client.options("/threat-monitor/domain-intel", headers={"Origin": "https://echoray.io"})
    
    assert response.status_code == 204
    assert response.headers["access-control-allow-origin"] == "https://echoray.io"
    assert response.headers["access-control-max-age"] == "86400"
    assert "Authorization" in response.headers["access-control-allow-headers"]


def test_errors_carry_cors_headers(client):
    response = client.post("/threat-monitor/url-scan", json={"url": "x"}, headers={"Origin": "https://echoray.com"})
    assert response.status_code == 401
    assert response.headers["access-control-allow-origin"] == "https://echoray.com"


# ============================================================================
# AUTH HELPERS AND SCHEMA
# ============================================================================

def test_bearer_subject_decoding():
    from threatmonitor.api.auth import decode_bearer_subject
    from conftest import make_token
    
    assert decode_bearer_subject(f"Bearer {make_token('user_42')}") == "user_42"
    assert decode_bearer_subject("Basic abc") is None
    assert decode_bearer_subject("Bearer a.!!!.c") is None
    assert decode_bearer_subject(None) is None


def test_error_envelope_documented(client):
    schema = client.get("/openapi.json").json()
    responses = schema["paths"]["/threat-monitor/port-scan"]["post"]["responses"]
    assert {"400", "401", "429", "503"} <= set(responses)
