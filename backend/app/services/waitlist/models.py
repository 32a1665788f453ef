# backend/app/services/waitlist/models.py
"""
Waitlist entry model and store key layout.

Partition: TENANT#{tenant_id}
Sort keys (per scope = date "YYYY-MM-DD" or product id):
  WAITLIST#{scope}#ENTRY#{position:08d}  - entries, FIFO by sort key
  WAITLIST#{scope}#SEQ                   - next position to hand out
  WAITLIST#{scope}#NOTIFIED              - id of the single notified entry
"""

import re
from dataclasses import dataclass, replace
from datetime import date, datetime
from enum import Enum

ENTITY_ENTRY = "waitlist_entry"
ENTITY_SEQUENCE = "waitlist_sequence"
ENTITY_MARKER = "waitlist_marker"

_DATE_SCOPE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class WaitlistStatus(str, Enum):
    WAITING = "waiting"
    NOTIFIED = "notified"
    BOOKED = "booked"
    EXPIRED = "expired"


ACTIVE_STATUSES = frozenset({WaitlistStatus.WAITING, WaitlistStatus.NOTIFIED})
TERMINAL_STATUSES = frozenset({WaitlistStatus.BOOKED, WaitlistStatus.EXPIRED})


@dataclass(frozen=True)
class WaitlistEntry:
    id: str
    tenant_id: str
    scope_key: str
    visitor_email: str
    visitor_name: str
    position: int
    status: WaitlistStatus
    created_at: datetime
    notified_at: datetime | None = None
    expires_at: datetime | None = None
    booked_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def evolve(self, **changes) -> "WaitlistEntry":
        return replace(self, **changes)

    def to_item(self) -> dict:
        return {
            "entity_type": ENTITY_ENTRY,
            "id": self.id,
            "tenant_id": self.tenant_id,
            "scope_key": self.scope_key,
            "visitor_email": self.visitor_email,
            "visitor_name": self.visitor_name,
            "position": self.position,
            "status": self.status.value,
            "created_at": _iso(self.created_at),
            "notified_at": _iso(self.notified_at),
            "expires_at": _iso(self.expires_at),
            "booked_at": _iso(self.booked_at),
        }

    @classmethod
    def from_item(cls, item: dict) -> "WaitlistEntry":
        return cls(
            id=item["id"],
            tenant_id=item["tenant_id"],
            scope_key=item["scope_key"],
            visitor_email=item["visitor_email"],
            visitor_name=item.get("visitor_name") or "",
            position=int(item["position"]),
            status=WaitlistStatus(item["status"]),
            created_at=_parse(item["created_at"]),
            notified_at=_parse(item.get("notified_at")),
            expires_at=_parse(item.get("expires_at")),
            booked_at=_parse(item.get("booked_at")),
        )


# ── Keys ─────────────────────────────────────────────────────────────────


def tenant_partition(tenant_id: str) -> str:
    return f"TENANT#{tenant_id}"


def entry_prefix(scope_key: str) -> str:
    return f"WAITLIST#{scope_key}#ENTRY#"


def entry_sort_key(scope_key: str, position: int) -> str:
    return f"{entry_prefix(scope_key)}{position:08d}"


def sequence_sort_key(scope_key: str) -> str:
    return f"WAITLIST#{scope_key}#SEQ"


def marker_sort_key(scope_key: str) -> str:
    return f"WAITLIST#{scope_key}#NOTIFIED"


def scope_date(scope_key: str) -> date | None:
    """Date of a date scope, None for product scopes."""
    if not _DATE_SCOPE.match(scope_key):
        return None
    try:
        return date.fromisoformat(scope_key)
    except ValueError:
        return None


def is_active_entry_item(item: dict) -> bool:
    return (
        item.get("entity_type") == ENTITY_ENTRY
        and item.get("status") in {s.value for s in ACTIVE_STATUSES}
    )


# ── Helpers ──────────────────────────────────────────────────────────────


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _parse(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None
