#!/usr/bin/env python3
"""
EchoRay Threat Monitor - Provider Connectivity Check
Reports configured credentials and makes one live call per provider
"""

import asyncio
import sys
from pathlib import Path

# ===== ENVIRONMENT SETUP =====
def setup_environment():
    """Load .env and setup paths"""
    print("=" * 70)
    print("🔧 Threat Monitor - Provider Connection Check")
    print("=" * 70)
    
    project_root = Path(__file__).resolve().parent
    sys.path.insert(0, str(project_root))
    
    from dotenv import load_dotenv
    
    for env_path in (project_root / '.env', Path.cwd() / '.env'):
        if env_path.exists():
            print(f"\n📂 Found .env file at: {env_path}")
            load_dotenv(dotenv_path=env_path, override=True)
            return
    
    print("\n⚠️  WARNING: No .env file found!")
    print("   Copy .env.example to .env and fill in:")
    print("   SECURITYTRAILS_API_KEY=your_key_here")
    print("   ABUSEIPDB_API_KEY=your_key_here")

def check_api_keys(settings):
    """Report which provider credentials are present"""
    print("\n" + "=" * 70)
    print("🔑 Checking API Keys")
    print("=" * 70)
    
    keys = {
        'SecurityTrails': settings.SECURITYTRAILS_API_KEY,
        'AbuseIPDB': settings.ABUSEIPDB_API_KEY,
        'WHOIS (optional)': settings.WHOISJSON_API_KEY,
    }
    for name, key in keys.items():
        if key:
            print(f"✅ {name}: Found (starts with {key[:4]}...)")
        else:
            print(f"❌ {name}: NOT FOUND")

async def run_live_checks(providers):
    """One call per provider; failures are reported, not raised"""
    from threatmonitor.core.fanout import settle_all
    
    calls = {
        'whois': ('example.com', lambda c: c.fetch('example.com')),
        'dns': ('example.com', lambda c: c.lookup('example.com')),
        'security_trails': ('example.com', lambda c: c.domain_details('example.com')),
        'abuseipdb': ('8.8.8.8', lambda c: c.fetch('8.8.8.8')),
        'geolocation': ('8.8.8.8', lambda c: c.fetch('8.8.8.8')),
        'phishtank': ('https://example.com', lambda c: c.fetch('https://example.com')),
        'ssl': ('https://example.com', lambda c: c.fetch('https://example.com')),
    }
    
    pending = {}
    for key, (target, call) in calls.items():
        client = providers.get(key)
        if client is None:
            print(f"   ⏭️  {key}: not configured - Skipping")
            continue
        pending[key] = call(client)
    
    results = await settle_all(pending, timeout=15)
    
    print("\n" + "=" * 70)
    print("📡 Live Provider Calls")
    print("=" * 70)
    for key, result in results.items():
        target = calls[key][0]
        if result.ok:
            print(f"✅ {key:<16} {target:<22} OK")
        else:
            print(f"❌ {key:<16} {target:<22} {result.error}")
    
    return all(r.ok for r in results.values())

def main():
    try:
        setup_environment()
        
        # Import after environment is set up
        from threatmonitor.config import Settings
        from threatmonitor.core.providers import build_providers
        
        settings = Settings()
        check_api_keys(settings)
        
        providers = build_providers(settings)
        try:
            all_ok = asyncio.run(run_live_checks(providers))
        finally:
            providers.close()
        
        print("\n✓ All providers reachable" if all_ok else "\n⚠️  Some providers failed")
        sys.exit(0 if all_ok else 1)
        
    except KeyboardInterrupt:
        print("\n\n⚠️  Check interrupted by user")

if __name__ == "__main__":
    main()
