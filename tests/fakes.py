"""
In-memory stand-ins for the provider clients.

Each fake records the targets it was asked about and either returns its
payload or raises its configured error.
"""
from threatmonitor.core.errors import ProviderError


class FakeClient:
    def __init__(self, payload=None, error=None, name="fake"):
        self.payload = payload
        self.error = error
        self.name = name
        self.calls = []
        self.closed = False

    async def _respond(self, target):
        self.calls.append(target)
        if self.error is not None:
            raise self.error
        return self.payload

    async def fetch(self, target):
        return await self._respond(target)

    def close(self):
        self.closed = True


class FakeSecurityTrails(FakeClient):
    def __init__(self, details=None, history=None, details_error=None, history_error=None):
        super().__init__(payload=details, name="SecurityTrails")
        self.history = history
        self.details_error = details_error
        self.history_error = history_error

    async def domain_details(self, domain):
        self.calls.append(('details', domain))
        if self.details_error is not None:
            raise self.details_error
        return self.payload

    async def domain_history(self, domain):
        self.calls.append(('history', domain))
        if self.history_error is not None:
            raise self.history_error
        return self.history


class FakeDns(FakeClient):
    async def lookup(self, domain):
        return await self._respond(domain)


def down(provider):
    """A ProviderError as raised for an upstream 500"""
    return ProviderError(provider, "unexpected status 500", status=500)
