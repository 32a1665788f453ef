# backend/app/services/waitlist/service.py
"""
Waitlist state machine.

    waiting ──promote_next──▶ notified ──confirm_booking──▶ booked
       │                         │
       └──expire_past / expire_all──▶ expired ◀──expire_stale (expires_at <= now)

booked / expired are terminal.

Per scope (tenant_id, scope_key):
- positions come from an explicit sequence record (FIFO by join time);
- at most one entry is `notified`, tracked by a marker record;
- every transition runs under the scope lock, and every write is
  conditional on the state it was read in, so concurrent workers in other
  processes cannot double-notify either.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Callable
from uuid import uuid4

from ..errors import ConditionFailed, DuplicateEntry, EntryNotFound, InvalidTransition
from ..events import EventNotifier
from ..store.base import ABSENT, PersistenceStore
from .locks import ScopeLocks
from .models import (
    ENTITY_MARKER,
    ENTITY_SEQUENCE,
    WaitlistEntry,
    WaitlistStatus,
    entry_prefix,
    entry_sort_key,
    is_active_entry_item,
    marker_sort_key,
    scope_date,
    sequence_sort_key,
    tenant_partition,
)

logger = logging.getLogger(__name__)

DEFAULT_NOTIFICATION_WINDOW = timedelta(minutes=10)

CapacityCheck = Callable[[str, str], bool]


@dataclass(frozen=True)
class ExpiryResult:
    expired: WaitlistEntry | None = None
    promoted: WaitlistEntry | None = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WaitlistService:
    def __init__(
        self,
        store: PersistenceStore,
        notifier: EventNotifier,
        *,
        notification_window: timedelta = DEFAULT_NOTIFICATION_WINDOW,
        capacity_check: CapacityCheck | None = None,
        locks: ScopeLocks | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        if notification_window <= timedelta(0):
            raise ValueError("notification_window must be positive")
        self.store = store
        self.notifier = notifier
        self.notification_window = notification_window
        self.capacity_check = capacity_check
        self.locks = locks if locks is not None else ScopeLocks()
        self.clock = clock

    # ── Queries ──────────────────────────────────────────────────────────

    def list_entries(self, tenant_id: str, scope_key: str) -> list[WaitlistEntry]:
        """All entries of a scope in position order."""
        items = self.store.query_by_prefix(tenant_partition(tenant_id), entry_prefix(scope_key))
        return sorted((WaitlistEntry.from_item(i) for i in items), key=lambda e: e.position)

    def get_entry(self, tenant_id: str, scope_key: str, entry_id: str) -> WaitlistEntry:
        for entry in self.list_entries(tenant_id, scope_key):
            if entry.id == entry_id:
                return entry
        raise EntryNotFound(tenant_id, scope_key, entry_id)

    def notified_entry(self, tenant_id: str, scope_key: str) -> WaitlistEntry | None:
        marker = self.store.get(tenant_partition(tenant_id), marker_sort_key(scope_key))
        entry_id = marker.get("entry_id") if marker else None
        if not entry_id:
            return None
        for entry in self.list_entries(tenant_id, scope_key):
            if entry.id == entry_id and entry.status == WaitlistStatus.NOTIFIED:
                return entry
        return None

    def active_scopes(self) -> list[tuple[str, str]]:
        """(tenant_id, scope_key) pairs with waiting or notified entries."""
        items = self.store.scan_by_predicate(is_active_entry_item)
        return sorted({(item["tenant_id"], item["scope_key"]) for item in items})

    # ── Transitions ──────────────────────────────────────────────────────

    def join(
        self,
        tenant_id: str,
        scope_key: str,
        visitor_email: str,
        visitor_name: str = "",
        timeout: float | None = None,
    ) -> WaitlistEntry:
        """
        Add a visitor to the end of the scope's queue.

        Raises:
            DuplicateEntry: visitor already waiting/notified in this scope
        """
        email = (visitor_email or "").strip().lower()
        if not email:
            raise ValueError("visitor_email is required")

        pk = tenant_partition(tenant_id)
        with self.locks.hold(tenant_id, scope_key, timeout):
            entries = self.list_entries(tenant_id, scope_key)
            if any(e.visitor_email == email and e.is_active for e in entries):
                raise DuplicateEntry(tenant_id, scope_key, email)

            position = self._next_position(pk, scope_key, len(entries))
            entry = WaitlistEntry(
                id=uuid4().hex,
                tenant_id=tenant_id,
                scope_key=scope_key,
                visitor_email=email,
                visitor_name=(visitor_name or "").strip(),
                position=position,
                status=WaitlistStatus.WAITING,
                created_at=self.clock(),
            )
            self.store.put(pk, entry_sort_key(scope_key, position), entry.to_item(), ABSENT)

        logger.info(f"Waitlist join: {email} → {tenant_id}/{scope_key} position={position}")
        if not self.notifier.joined(email, scope_key, position, tenant_id=tenant_id):
            logger.warning(f"Join confirmation not queued for entry {entry.id}")
        return entry

    def promote_next(
        self,
        tenant_id: str,
        scope_key: str,
        timeout: float | None = None,
    ) -> WaitlistEntry | None:
        """
        Offer freed capacity to the first waiting visitor.

        No-op (returns None) when nobody is waiting, another entry is
        still notified, or the scope has no free capacity.
        """
        with self.locks.hold(tenant_id, scope_key, timeout):
            return self._promote_locked(tenant_id, scope_key, self.clock())

    def confirm_booking(
        self,
        tenant_id: str,
        scope_key: str,
        entry_id: str,
        timeout: float | None = None,
    ) -> WaitlistEntry:
        """
        The notified visitor completed a booking.

        Raises:
            EntryNotFound: unknown entry id
            InvalidTransition: entry is not notified, or its window elapsed
        """
        pk = tenant_partition(tenant_id)
        with self.locks.hold(tenant_id, scope_key, timeout):
            entry = self.get_entry(tenant_id, scope_key, entry_id)
            now = self.clock()

            if entry.status != WaitlistStatus.NOTIFIED:
                logger.warning(
                    f"confirm_booking on {entry.status.value} entry {entry_id} "
                    f"({tenant_id}/{scope_key})"
                )
                raise InvalidTransition(entry_id, entry.status.value, WaitlistStatus.BOOKED.value)
            if entry.expires_at is not None and now >= entry.expires_at:
                logger.warning(f"confirm_booking after expiry for entry {entry_id}")
                raise InvalidTransition(
                    entry_id, entry.status.value, WaitlistStatus.BOOKED.value,
                    "notification window elapsed",
                )

            booked = entry.evolve(status=WaitlistStatus.BOOKED, booked_at=now, expires_at=None)
            self._write_entry(pk, booked, expected=WaitlistStatus.NOTIFIED)
            self._clear_marker(pk, scope_key, entry_id)

        logger.info(f"Waitlist booked: entry {entry_id} ({tenant_id}/{scope_key})")
        return booked

    def expire_stale(
        self,
        tenant_id: str,
        scope_key: str,
        now: datetime | None = None,
        timeout: float | None = None,
    ) -> ExpiryResult:
        """
        Expire the notified entry once its window has passed, then
        immediately promote the next waiting entry (one logical step).
        """
        pk = tenant_partition(tenant_id)
        with self.locks.hold(tenant_id, scope_key, timeout):
            now = now or self.clock()
            marker = self.store.get(pk, marker_sort_key(scope_key))
            entry_id = marker.get("entry_id") if marker else None
            if not entry_id:
                return ExpiryResult()

            entry = next(
                (e for e in self.list_entries(tenant_id, scope_key) if e.id == entry_id),
                None,
            )
            if entry is None or entry.status != WaitlistStatus.NOTIFIED:
                # Marker outlived its entry - release it
                self._clear_marker(pk, scope_key, entry_id)
                return ExpiryResult()

            if entry.expires_at is not None and entry.expires_at > now:
                return ExpiryResult()

            expired = entry.evolve(status=WaitlistStatus.EXPIRED, expires_at=None)
            self._write_entry(pk, expired, expected=WaitlistStatus.NOTIFIED)
            self._clear_marker(pk, scope_key, entry_id)
            logger.info(f"Waitlist expired: entry {entry_id} ({tenant_id}/{scope_key})")

            promoted = self._promote_locked(tenant_id, scope_key, now)
            return ExpiryResult(expired=expired, promoted=promoted)

    def expire_past(
        self,
        tenant_id: str,
        scope_key: str,
        today: date,
        timeout: float | None = None,
    ) -> list[WaitlistEntry]:
        """Expire every active entry of a date scope that lies before `today`."""
        day = scope_date(scope_key)
        if day is None or day >= today:
            return []
        return self.expire_all(tenant_id, scope_key, timeout=timeout)

    def expire_all(
        self,
        tenant_id: str,
        scope_key: str,
        timeout: float | None = None,
    ) -> list[WaitlistEntry]:
        """
        Expire every waiting/notified entry of a scope and release the offer.

        Used once the scope can no longer be booked: a past date, or a
        product whose last session has ended.
        """
        pk = tenant_partition(tenant_id)
        expired: list[WaitlistEntry] = []
        with self.locks.hold(tenant_id, scope_key, timeout):
            for entry in self.list_entries(tenant_id, scope_key):
                if not entry.is_active:
                    continue
                updated = entry.evolve(status=WaitlistStatus.EXPIRED, expires_at=None)
                self._write_entry(pk, updated, expected=entry.status)
                expired.append(updated)

            marker = self.store.get(pk, marker_sort_key(scope_key))
            if marker and marker.get("entry_id"):
                self._clear_marker(pk, scope_key, marker["entry_id"])

        if expired:
            logger.info(f"Waitlist cleanup: {len(expired)} entries expired ({tenant_id}/{scope_key})")
        return expired

    # ── Internals ────────────────────────────────────────────────────────

    def _promote_locked(self, tenant_id: str, scope_key: str, now: datetime) -> WaitlistEntry | None:
        pk = tenant_partition(tenant_id)
        marker = self.store.get(pk, marker_sort_key(scope_key))
        current_id = marker.get("entry_id") if marker else None
        entries = self.list_entries(tenant_id, scope_key)

        if current_id:
            current = next((e for e in entries if e.id == current_id), None)
            if current is not None and current.status == WaitlistStatus.NOTIFIED:
                logger.debug(f"Entry {current_id} still holds the offer for {tenant_id}/{scope_key}")
                return None

        candidate = next((e for e in entries if e.status == WaitlistStatus.WAITING), None)
        if candidate is None:
            return None

        if self.capacity_check is not None and not self.capacity_check(tenant_id, scope_key):
            logger.info(f"No free capacity in {tenant_id}/{scope_key}, promotion skipped")
            return None

        # Claim the single notified slot first; losing this race means
        # another worker is promoting the same scope.
        self.store.put(
            pk,
            marker_sort_key(scope_key),
            {
                "entity_type": ENTITY_MARKER,
                "tenant_id": tenant_id,
                "scope_key": scope_key,
                "entry_id": candidate.id,
            },
            ABSENT if marker is None else {"entry_id": current_id},
        )

        promoted = candidate.evolve(
            status=WaitlistStatus.NOTIFIED,
            notified_at=now,
            expires_at=now + self.notification_window,
        )
        self._write_entry(pk, promoted, expected=WaitlistStatus.WAITING)

        logger.info(
            f"Waitlist notified: {promoted.visitor_email} for {tenant_id}/{scope_key} "
            f"(expires {promoted.expires_at.isoformat()})"
        )
        sent = self.notifier.notify(
            promoted.visitor_email, scope_key, promoted.expires_at, tenant_id=tenant_id
        )
        if not sent:
            logger.warning(f"Slot-available notification not queued for entry {promoted.id}")
        return promoted

    def _next_position(self, pk: str, scope_key: str, existing: int) -> int:
        sk = sequence_sort_key(scope_key)
        sequence = self.store.get(pk, sk)
        if sequence is None:
            position = existing + 1
            condition = ABSENT
        else:
            position = int(sequence["next"])
            condition = {"next": position}

        self.store.put(pk, sk, {"entity_type": ENTITY_SEQUENCE, "next": position + 1}, condition)
        return position

    def _write_entry(self, pk: str, entry: WaitlistEntry, expected: WaitlistStatus) -> None:
        self.store.put(
            pk,
            entry_sort_key(entry.scope_key, entry.position),
            entry.to_item(),
            {"id": entry.id, "status": expected.value},
        )

    def _clear_marker(self, pk: str, scope_key: str, entry_id: str) -> None:
        try:
            self.store.put(
                pk,
                marker_sort_key(scope_key),
                {"entity_type": ENTITY_MARKER, "scope_key": scope_key, "entry_id": None},
                {"entry_id": entry_id},
            )
        except ConditionFailed:
            # Marker already moved on to another entry
            logger.debug(f"Marker for {pk}/{scope_key} no longer points at {entry_id}")
