# backend/app/services/scheduler.py
"""
Scheduling orchestrator.

Entry points:
- on_capacity_freed(tenant, scope) - a booking was cancelled/deleted:
  offer the freed capacity to the first waiting visitor.
- on_tick(now) - periodic sweep over every scope with active entries:
  past-date or ended-product cleanup, expiry of stale offers, cascade to
  the next visitor.

waitlist_tick_loop runs on_tick as an asyncio task in backend lifespan.
Uses synchronous store access (via asyncio.to_thread).
"""

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from datetime import datetime, timezone

from .cancellation import ACTOR_VISITOR, RefundResult, calculate_refund
from .slots.calculator import TimeSlot, generate_slots
from .slots.config import BookingConfig
from .slots.timezone import local_date
from .tenants import TenantRepository
from .waitlist.models import WaitlistEntry, scope_date
from .waitlist.retry import retry_transient
from .waitlist.service import WaitlistService

logger = logging.getLogger(__name__)


@dataclass
class TickResult:
    scopes: int = 0
    expired: int = 0
    past_cleaned: int = 0
    notified: int = 0
    errors: int = 0

    def merge(self, other: "TickResult") -> None:
        self.expired += other.expired
        self.past_cleaned += other.past_cleaned
        self.notified += other.notified
        self.errors += other.errors

    def to_dict(self) -> dict:
        return {
            "scopes": self.scopes,
            "expired": self.expired,
            "pastDateCleaned": self.past_cleaned,
            "notified": self.notified,
            "errors": self.errors,
        }


class SchedulingOrchestrator:
    def __init__(
        self,
        waitlist: WaitlistService,
        tenants: TenantRepository,
        *,
        workers: int = 4,
        retry_attempts: int = 3,
        retry_backoff: float = 0.2,
        lock_timeout: float | None = None,
    ):
        self.waitlist = waitlist
        self.tenants = tenants
        self.workers = max(1, workers)
        self.retry_attempts = retry_attempts
        self.retry_backoff = retry_backoff
        self.lock_timeout = lock_timeout

    def _retry(self, fn, *args, **kwargs):
        return retry_transient(
            fn, *args,
            attempts=self.retry_attempts,
            backoff=self.retry_backoff,
            timeout=self.lock_timeout,
            **kwargs,
        )

    # ── Availability / refunds ───────────────────────────────────────────

    def available_slots(
        self,
        tenant_id: str,
        target_date: str,
        duration_minutes: int | None = None,
        now: datetime | None = None,
        config: BookingConfig | None = None,
    ) -> list[TimeSlot]:
        """`config`: the tenant's booking config when the caller already loaded it."""
        config = config or self.tenants.get_booking_config(tenant_id)
        config = config.with_slot_duration(duration_minutes)
        events = self.tenants.active_events(tenant_id, target_date)
        return generate_slots(target_date, config, events, now)

    def preview_cancellation(
        self,
        tenant_id: str,
        paid_amount_cents: int,
        event_start_time: datetime | str,
        actor: str = ACTOR_VISITOR,
        now: datetime | None = None,
    ) -> RefundResult:
        config = self.tenants.get_cancellation_config(tenant_id)
        return calculate_refund(paid_amount_cents, event_start_time, config, actor, now)

    # ── Waitlist ─────────────────────────────────────────────────────────

    def join(
        self,
        tenant_id: str,
        scope_key: str,
        visitor_email: str,
        visitor_name: str = "",
    ) -> WaitlistEntry:
        return self._retry(self.waitlist.join, tenant_id, scope_key, visitor_email, visitor_name)

    def confirm_booking(self, tenant_id: str, scope_key: str, entry_id: str) -> WaitlistEntry:
        return self._retry(self.waitlist.confirm_booking, tenant_id, scope_key, entry_id)

    def on_capacity_freed(self, tenant_id: str, scope_key: str) -> WaitlistEntry | None:
        """Idempotent: no waiting entries or an outstanding offer → no-op."""
        promoted = self._retry(self.waitlist.promote_next, tenant_id, scope_key)
        if promoted is None:
            logger.info(f"Capacity freed in {tenant_id}/{scope_key}, nobody to notify")
        return promoted

    def on_tick(self, now: datetime | None = None) -> TickResult:
        """
        Sweep every scope with waiting/notified entries.

        Scopes are swept in parallel (bounded pool); a failure in one scope
        is logged and counted, never aborting the others.
        """
        now = now or datetime.now(timezone.utc)
        result = TickResult()

        try:
            scopes = self.waitlist.active_scopes()
        except Exception:
            logger.exception("waitlist tick: scope discovery failed")
            result.errors += 1
            return result

        result.scopes = len(scopes)
        if not scopes:
            return result

        with ThreadPoolExecutor(max_workers=min(self.workers, len(scopes))) as pool:
            futures = {
                pool.submit(self._sweep_scope, tenant_id, scope_key, now): (tenant_id, scope_key)
                for tenant_id, scope_key in scopes
            }
            for future in as_completed(futures):
                tenant_id, scope_key = futures[future]
                try:
                    result.merge(future.result())
                except Exception:
                    logger.exception(f"waitlist tick: sweep failed for {tenant_id}/{scope_key}")
                    result.errors += 1

        logger.info(f"waitlist tick completed: {result.to_dict()}")
        return result

    def _sweep_scope(self, tenant_id: str, scope_key: str, now: datetime) -> TickResult:
        partial = TickResult()

        cleaned = self._cleanup_closed_scope(tenant_id, scope_key, now)
        if cleaned:
            partial.past_cleaned += len(cleaned)
            return partial

        outcome = self.waitlist.expire_stale(tenant_id, scope_key, now, timeout=self.lock_timeout)
        if outcome.expired is not None:
            partial.expired += 1
        if outcome.promoted is not None:
            partial.notified += 1
        return partial

    def _cleanup_closed_scope(self, tenant_id: str, scope_key: str, now: datetime) -> list[WaitlistEntry]:
        """Date scopes close after their (tenant-local) day, products after `endsAt`."""
        if scope_date(scope_key) is None:
            if not self.tenants.product_ended(tenant_id, scope_key, now):
                return []
            return self.waitlist.expire_all(tenant_id, scope_key, timeout=self.lock_timeout)

        timezone_name = self.tenants.get_booking_config(tenant_id).timezone
        today = local_date(now, timezone_name)
        return self.waitlist.expire_past(tenant_id, scope_key, today, timeout=self.lock_timeout)


async def waitlist_tick_loop(orchestrator: SchedulingOrchestrator, interval: int = 60) -> None:
    """
    Periodic loop that expires stale waitlist offers and promotes the next
    visitor in line.
    """
    logger.info("waitlist_tick_loop started")

    try:
        while True:
            try:
                await asyncio.to_thread(orchestrator.on_tick)
            except asyncio.CancelledError:
                logger.info("waitlist_tick_loop cancelled")
                raise
            except Exception:
                logger.exception("waitlist_tick_loop error")

            await asyncio.sleep(interval)
    except asyncio.CancelledError:
        pass
