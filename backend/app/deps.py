# backend/app/deps.py
"""
Engine wiring for FastAPI (Depends providers, singletons).

STORE_BACKEND selects the Persistence Store:
  redis  - RedisStore on the shared client (default)
  sql    - SqlStore on DATABASE_URL
  memory - MemoryStore (single process, data lost on restart)
"""

from datetime import timedelta
from functools import lru_cache

from .config import settings
from .services.events import EventNotifier, RedisEventNotifier
from .services.scheduler import SchedulingOrchestrator
from .services.store import MemoryStore, PersistenceStore, RedisStore, SqlStore
from .services.tenants import TenantRepository
from .services.waitlist import WaitlistService


@lru_cache
def get_store() -> PersistenceStore:
    backend = settings.store_backend.lower()
    if backend == "memory":
        return MemoryStore()
    if backend == "sql":
        from .database import SessionLocal, init_db
        init_db()
        return SqlStore(SessionLocal)
    if backend == "redis":
        from .redis_client import redis_client
        return RedisStore(redis_client)
    raise RuntimeError(f"Unknown STORE_BACKEND {settings.store_backend!r}")


@lru_cache
def get_notifier() -> EventNotifier:
    from .redis_client import redis_client
    return RedisEventNotifier(redis_client)


@lru_cache
def get_tenants() -> TenantRepository:
    return TenantRepository(get_store())


@lru_cache
def get_waitlist() -> WaitlistService:
    tenants = get_tenants()
    return WaitlistService(
        get_store(),
        get_notifier(),
        notification_window=timedelta(minutes=settings.waitlist_notification_minutes),
        capacity_check=tenants.has_capacity,
    )


@lru_cache
def get_orchestrator() -> SchedulingOrchestrator:
    return SchedulingOrchestrator(
        get_waitlist(),
        get_tenants(),
        workers=settings.waitlist_tick_workers,
        retry_attempts=settings.retry_attempts,
        retry_backoff=settings.retry_backoff_seconds,
        lock_timeout=settings.scope_lock_timeout,
    )
