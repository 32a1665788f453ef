from datetime import datetime, timedelta, timezone

import pytest

from backend.app.services.scheduler import SchedulingOrchestrator
from backend.app.services.store import MemoryStore
from backend.app.services.tenants import TenantRepository
from backend.app.services.waitlist import WaitlistService


T0 = datetime(2024, 1, 15, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeNotifier:
    """Records notifications instead of pushing them to Redis."""

    def __init__(self, ok: bool = True):
        self.ok = ok
        self.notified: list[tuple] = []
        self.joins: list[tuple] = []

    def notify(self, visitor_email, scope_key, expires_at, tenant_id=None):
        self.notified.append((tenant_id, scope_key, visitor_email, expires_at))
        return self.ok

    def joined(self, visitor_email, scope_key, position, tenant_id=None):
        self.joins.append((tenant_id, scope_key, visitor_email, position))
        return self.ok


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def tenants(store):
    return TenantRepository(store)


@pytest.fixture
def waitlist(store, notifier, clock):
    return WaitlistService(store, notifier, clock=clock)


@pytest.fixture
def orchestrator(waitlist, tenants):
    return SchedulingOrchestrator(waitlist, tenants, workers=2, retry_backoff=0)
