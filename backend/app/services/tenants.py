# backend/app/services/tenants.py
"""
Tenant data read by the scheduling engine.

Stored in the tenant partition of the Persistence Store:
  CONFIG#BOOKING            - booking config (camelCase JSON)
  CONFIG#CANCELLATION       - cancellation config
  EVENT#{date}#{event_id}   - calendar entries that block time
  PRODUCT#{product_id}      - capacity-limited offering (endsAt closes its waitlist)
"""

import logging
from datetime import date, datetime, timezone

from .slots.calculator import ExistingEvent, has_available_slot
from .slots.config import BookingConfig, CancellationConfig
from .slots.timezone import parse_date
from .store.base import PersistenceStore
from .waitlist.models import scope_date, tenant_partition

logger = logging.getLogger(__name__)

BOOKING_CONFIG_KEY = "CONFIG#BOOKING"
CANCELLATION_CONFIG_KEY = "CONFIG#CANCELLATION"

# Event statuses that occupy calendar time
BLOCKING_STATUSES = ("scheduled", "pending")


def _event_prefix(day: date) -> str:
    return f"EVENT#{day.isoformat()}#"


def _product_key(product_id: str) -> str:
    return f"PRODUCT#{product_id}"


class TenantRepository:
    def __init__(self, store: PersistenceStore):
        self.store = store

    # ── Config ───────────────────────────────────────────────────────────

    def get_booking_config(self, tenant_id: str) -> BookingConfig:
        """Tenant config merged over defaults (defaults if none saved)."""
        item = self.store.get(tenant_partition(tenant_id), BOOKING_CONFIG_KEY)
        return BookingConfig.from_dict((item or {}).get("config"))

    def save_booking_config(self, tenant_id: str, config: BookingConfig) -> None:
        self.store.put(
            tenant_partition(tenant_id),
            BOOKING_CONFIG_KEY,
            {"entity_type": "booking_config", "tenant_id": tenant_id, "config": config.to_dict()},
        )

    def get_cancellation_config(self, tenant_id: str) -> CancellationConfig:
        item = self.store.get(tenant_partition(tenant_id), CANCELLATION_CONFIG_KEY)
        return CancellationConfig.from_dict((item or {}).get("config"))

    def save_cancellation_config(self, tenant_id: str, config: CancellationConfig) -> None:
        self.store.put(
            tenant_partition(tenant_id),
            CANCELLATION_CONFIG_KEY,
            {"entity_type": "cancellation_config", "tenant_id": tenant_id, "config": config.to_dict()},
        )

    # ── Calendar events ──────────────────────────────────────────────────

    def save_event(
        self,
        tenant_id: str,
        event_id: str,
        day: str | date,
        start_time: datetime,
        end_time: datetime,
        status: str = "scheduled",
    ) -> None:
        day = parse_date(day)
        self.store.put(
            tenant_partition(tenant_id),
            f"{_event_prefix(day)}{event_id}",
            {
                "entity_type": "calendar_event",
                "tenant_id": tenant_id,
                "id": event_id,
                "date": day.isoformat(),
                "startTime": start_time.isoformat(),
                "endTime": end_time.isoformat(),
                "status": status,
            },
        )

    def list_events(self, tenant_id: str, day: str | date) -> list[dict]:
        return self.store.query_by_prefix(tenant_partition(tenant_id), _event_prefix(parse_date(day)))

    def active_events(self, tenant_id: str, day: str | date) -> list[ExistingEvent]:
        """Events of the day that block slots (scheduled / pending)."""
        events = []
        for item in self.list_events(tenant_id, day):
            if item.get("status") not in BLOCKING_STATUSES:
                continue
            try:
                events.append(ExistingEvent(
                    start_time=_instant(item["startTime"]),
                    end_time=_instant(item["endTime"]),
                ))
            except (KeyError, ValueError):
                logger.warning(f"Skipping malformed event {item.get('id')} for tenant {tenant_id}")
        return events

    # ── Products ─────────────────────────────────────────────────────────

    def save_product(
        self,
        tenant_id: str,
        product_id: str,
        max_participants: int | None,
        signup_count: int = 0,
        ends_at: datetime | None = None,
    ) -> None:
        """`ends_at`: end of the last session; the waitlist closes after it."""
        self.store.put(
            tenant_partition(tenant_id),
            _product_key(product_id),
            {
                "entity_type": "product",
                "tenant_id": tenant_id,
                "id": product_id,
                "maxParticipants": max_participants,
                "signupCount": signup_count,
                "endsAt": ends_at.isoformat() if ends_at else None,
            },
        )

    def get_product(self, tenant_id: str, product_id: str) -> dict | None:
        return self.store.get(tenant_partition(tenant_id), _product_key(product_id))

    def product_ended(self, tenant_id: str, product_id: str, now: datetime) -> bool:
        """True once the product's last session is over. Products without `endsAt` never end."""
        product = self.get_product(tenant_id, product_id)
        ends_at = (product or {}).get("endsAt")
        if not ends_at:
            return False
        return _instant(ends_at) <= now

    # ── Capacity ─────────────────────────────────────────────────────────

    def has_capacity(self, tenant_id: str, scope_key: str, now: datetime | None = None) -> bool:
        """
        Whether a waitlist scope currently has room for one more booking.

        Date scope: at least one future slot is free.
        Product scope: signups below maxParticipants (unlimited → no waitlist).
        """
        day = scope_date(scope_key)
        if day is not None:
            config = self.get_booking_config(tenant_id)
            events = self.active_events(tenant_id, day)
            return has_available_slot(day, config, events, now)

        product = self.get_product(tenant_id, scope_key)
        if not product or product.get("maxParticipants") is None:
            return False
        return int(product.get("signupCount") or 0) < int(product["maxParticipants"])


def _instant(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
