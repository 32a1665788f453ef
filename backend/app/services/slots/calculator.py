# backend/app/services/slots/calculator.py
"""
Availability generation for a single tenant day.

Produces fixed-length slots over the day's working window:
  (start_time, end_time, available)

Contains:
✓ weekly_schedule of the tenant (day enabled, working hours)
✓ slot_duration_minutes (a trailing partial slot is never emitted)
✓ existing calendar events (overlap → unavailable)
✓ now (past slots are dropped, not marked unavailable)

Does NOT contain:
✗ Event status filtering (caller passes only events that block time)
✗ Any I/O - pure function of its arguments
"""

from dataclasses import dataclass
from datetime import date, datetime, timezone

from .config import BookingConfig
from .timezone import day_of_week, parse_date, resolve_local_instant


@dataclass(frozen=True)
class TimeSlot:
    start_time: datetime
    end_time: datetime
    available: bool

    def to_dict(self) -> dict:
        return {
            "startTime": self.start_time.isoformat(),
            "endTime": self.end_time.isoformat(),
            "available": self.available,
        }


@dataclass(frozen=True)
class ExistingEvent:
    """Any calendar entry that blocks time, [start_time, end_time)."""
    start_time: datetime
    end_time: datetime

    def overlaps(self, start: datetime, end: datetime) -> bool:
        # Half-open: back-to-back intervals do not conflict
        return start < self.end_time and end > self.start_time


def generate_slots(
    target_date: str | date,
    config: BookingConfig,
    existing_events: list[ExistingEvent],
    now: datetime | None = None,
) -> list[TimeSlot]:
    """
    Calculate slots for a tenant on a specific date.

    Returns:
        Chronological list of future slots. Empty list = day off.
    """
    now = _aware(now or datetime.now(timezone.utc))
    target_date = parse_date(target_date)

    # Step 1: Working hours for the weekday in the tenant timezone
    schedule = config.day(day_of_week(target_date, config.timezone))
    if schedule is None or not schedule.enabled:
        return []

    # Step 2: Walk the window in slot-sized steps
    step = config.slot_duration_minutes
    window_end = schedule.end_minute
    events = [_aware_event(ev) for ev in existing_events]
    slots: list[TimeSlot] = []

    offset = schedule.start_minute
    while offset + step <= window_end:
        slot_start = resolve_local_instant(target_date, 0, offset, config.timezone)
        slot_end = resolve_local_instant(target_date, 0, offset + step, config.timezone)
        offset += step

        # Step 3: Past slots are invisible
        if slot_start <= now:
            continue

        # Step 4: Conflicts
        conflict = any(ev.overlaps(slot_start, slot_end) for ev in events)
        slots.append(TimeSlot(start_time=slot_start, end_time=slot_end, available=not conflict))

    return slots


def has_available_slot(
    target_date: str | date,
    config: BookingConfig,
    existing_events: list[ExistingEvent],
    now: datetime | None = None,
) -> bool:
    """True if at least one future slot on the date is free."""
    return any(
        slot.available
        for slot in generate_slots(target_date, config, existing_events, now)
    )


# ── Helpers ──────────────────────────────────────────────────────────────


def _aware(value: datetime) -> datetime:
    """Naive datetimes are treated as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _aware_event(event: ExistingEvent) -> ExistingEvent:
    if event.start_time.tzinfo is not None and event.end_time.tzinfo is not None:
        return event
    return ExistingEvent(start_time=_aware(event.start_time), end_time=_aware(event.end_time))
