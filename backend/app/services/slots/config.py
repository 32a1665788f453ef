# backend/app/services/slots/config.py
"""
Booking configuration for slots calculation and cancellation policy.

Tenant configs are stored as camelCase JSON (the format the booking widget
writes). Parsing merges the tenant's partial config over the defaults, then
validates - malformed values raise ConfigurationError here, never later in
slot generation.
"""

from dataclasses import dataclass, field, replace
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..errors import ConfigurationError


DAYS_PER_WEEK = 7
# Sunday = 0 … Saturday = 6
DAY_NAMES = ("sun", "mon", "tue", "wed", "thu", "fri", "sat")


def _check_hour(name: str, value) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(f"{name} must be an integer, got {value!r}")
    if not 0 <= value < 24:
        raise ConfigurationError(f"{name} must be in [0, 24), got {value}")


@dataclass(frozen=True)
class DaySchedule:
    """Working hours of one weekday. Hours are local to the tenant timezone."""
    enabled: bool = False
    start_hour: int = 9
    end_hour: int = 17

    def __post_init__(self):
        _check_hour("start_hour", self.start_hour)
        _check_hour("end_hour", self.end_hour)
        if self.enabled and self.start_hour >= self.end_hour:
            raise ConfigurationError(
                f"start_hour ({self.start_hour}) must be before "
                f"end_hour ({self.end_hour}) on an enabled day"
            )

    @property
    def start_minute(self) -> int:
        return self.start_hour * 60

    @property
    def end_minute(self) -> int:
        return self.end_hour * 60

    @classmethod
    def from_dict(cls, data: dict, base: "DaySchedule | None" = None) -> "DaySchedule":
        base = base or cls()
        return cls(
            enabled=bool(_pick(data, "enabled", "enabled", base.enabled)),
            start_hour=_pick(data, "startHour", "start_hour", base.start_hour),
            end_hour=_pick(data, "endHour", "end_hour", base.end_hour),
        )

    def to_dict(self) -> dict:
        return {
            "enabled": self.enabled,
            "startHour": self.start_hour,
            "endHour": self.end_hour,
        }


@dataclass(frozen=True)
class WeeklySchedule:
    days: tuple[DaySchedule, ...]

    def __post_init__(self):
        if len(self.days) != DAYS_PER_WEEK:
            raise ConfigurationError(
                f"weekly schedule needs {DAYS_PER_WEEK} days, got {len(self.days)}"
            )

    def __getitem__(self, day_of_week: int) -> DaySchedule:
        return self.days[day_of_week]

    @classmethod
    def from_dict(cls, data: dict, base: "WeeklySchedule | None" = None) -> "WeeklySchedule":
        """
        Parse a weekly schedule merged over `base`.

        Supports both key formats:
          numeric: {"1": {...}, "2": {...}}
          named:   {"mon": {...}, "tue": {...}}
        """
        days = list(base.days if base else (DaySchedule(),) * DAYS_PER_WEEK)
        for key, value in (data or {}).items():
            index = _day_index(key)
            if value is None:
                days[index] = replace(days[index], enabled=False)
                continue
            if not isinstance(value, dict):
                raise ConfigurationError(f"schedule for day {key!r} must be an object")
            days[index] = DaySchedule.from_dict(value, days[index])
        return cls(days=tuple(days))

    def to_dict(self) -> dict:
        return {str(i): day.to_dict() for i, day in enumerate(self.days)}


@dataclass(frozen=True)
class BookingConfig:
    """
    Tenant booking configuration.

    Attributes:
        timezone: IANA zone name the weekly schedule is expressed in
        slot_duration_minutes: Length of every bookable slot
        weekly_schedule: Working hours per weekday (Sunday = 0)
    """
    timezone: str = "Australia/Sydney"
    slot_duration_minutes: int = 30
    weekly_schedule: WeeklySchedule = field(
        default_factory=lambda: WeeklySchedule(days=_default_days())
    )

    def __post_init__(self):
        if (
            isinstance(self.slot_duration_minutes, bool)
            or not isinstance(self.slot_duration_minutes, int)
            or self.slot_duration_minutes <= 0
        ):
            raise ConfigurationError(
                f"slot_duration_minutes must be a positive integer, "
                f"got {self.slot_duration_minutes!r}"
            )
        validate_timezone(self.timezone)

    def day(self, day_of_week: int) -> DaySchedule:
        return self.weekly_schedule[day_of_week]

    def with_slot_duration(self, minutes: int | None) -> "BookingConfig":
        """Copy with a product-specific slot length (None keeps the tenant default)."""
        if not minutes:
            return self
        return replace(self, slot_duration_minutes=minutes)

    @classmethod
    def from_dict(cls, data: dict | None) -> "BookingConfig":
        """Parse a tenant's (possibly partial) booking config over the defaults."""
        base = get_default_booking_config()
        data = data or {}
        return cls(
            timezone=_pick(data, "timezone", "timezone", base.timezone) or base.timezone,
            slot_duration_minutes=_pick(
                data, "slotDurationMinutes", "slot_duration_minutes",
                base.slot_duration_minutes,
            ),
            weekly_schedule=WeeklySchedule.from_dict(
                _pick(data, "weeklySchedule", "weekly_schedule", None) or {},
                base.weekly_schedule,
            ),
        )

    def to_dict(self) -> dict:
        return {
            "timezone": self.timezone,
            "slotDurationMinutes": self.slot_duration_minutes,
            "weeklySchedule": self.weekly_schedule.to_dict(),
        }


@dataclass(frozen=True)
class CancellationConfig:
    """
    Visitor cancellation policy.

    Attributes:
        cancellation_deadline_hours: Cancel at least this long before start
            for a full refund
        late_cancellation_refund_percent: Share refunded after the deadline
    """
    cancellation_deadline_hours: float = 24
    late_cancellation_refund_percent: float = 0

    def __post_init__(self):
        hours = self.cancellation_deadline_hours
        percent = self.late_cancellation_refund_percent
        if isinstance(hours, bool) or not isinstance(hours, (int, float)) or hours < 0:
            raise ConfigurationError(
                f"cancellation_deadline_hours must be a non-negative number, got {hours!r}"
            )
        if isinstance(percent, bool) or not isinstance(percent, (int, float)) or not 0 <= percent <= 100:
            raise ConfigurationError(
                f"late_cancellation_refund_percent must be within 0..100, got {percent!r}"
            )

    @classmethod
    def from_dict(cls, data: dict | None) -> "CancellationConfig":
        base = get_default_cancellation_config()
        data = data or {}
        return cls(
            cancellation_deadline_hours=_pick(
                data, "cancellationDeadlineHours", "cancellation_deadline_hours",
                base.cancellation_deadline_hours,
            ),
            late_cancellation_refund_percent=_pick(
                data, "lateCancellationRefundPercent", "late_cancellation_refund_percent",
                base.late_cancellation_refund_percent,
            ),
        )

    def to_dict(self) -> dict:
        return {
            "cancellationDeadlineHours": self.cancellation_deadline_hours,
            "lateCancellationRefundPercent": self.late_cancellation_refund_percent,
        }


def validate_timezone(name: str) -> ZoneInfo:
    """Return the zone for `name` or raise ConfigurationError."""
    if not isinstance(name, str) or not name:
        raise ConfigurationError(f"timezone must be a non-empty string, got {name!r}")
    try:
        return _zone(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ConfigurationError(f"Unknown timezone {name!r}") from e


@lru_cache(maxsize=256)
def _zone(name: str) -> ZoneInfo:
    return ZoneInfo(name)


@lru_cache
def get_default_booking_config() -> BookingConfig:
    """Mon–Fri 09:00–17:00, 30-minute slots, Australia/Sydney."""
    return BookingConfig()


@lru_cache
def get_default_cancellation_config() -> CancellationConfig:
    return CancellationConfig()


# ── Helpers ──────────────────────────────────────────────────────────────


def _default_days() -> tuple[DaySchedule, ...]:
    weekday = DaySchedule(enabled=True, start_hour=9, end_hour=17)
    weekend = DaySchedule(enabled=False, start_hour=9, end_hour=17)
    return (weekend,) + (weekday,) * 5 + (weekend,)


def _day_index(key) -> int:
    """Map "0".."6" / 0..6 / "sun".."sat" to a Sunday-based index."""
    if isinstance(key, int) and not isinstance(key, bool):
        index = key
    elif isinstance(key, str) and key.strip().isdigit():
        index = int(key)
    elif isinstance(key, str) and key.strip().lower()[:3] in DAY_NAMES:
        return DAY_NAMES.index(key.strip().lower()[:3])
    else:
        raise ConfigurationError(f"Unknown weekday key {key!r}")

    if not 0 <= index < DAYS_PER_WEEK:
        raise ConfigurationError(f"Weekday index must be 0..6, got {index}")
    return index


def _pick(data: dict, camel: str, snake: str, default):
    if camel in data:
        return data[camel]
    if snake in data:
        return data[snake]
    return default
