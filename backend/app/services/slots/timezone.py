# backend/app/services/slots/timezone.py
"""
Wall-clock → instant conversion for tenant timezones.

The UTC offset of a zone on a given date is taken from a reference instant
anchored at noon UTC of that date: the instant is rendered as wall-clock time
in UTC and in the zone, and the difference is the offset. The offset is then
applied to the requested local time.

Known approximation: on a DST transition day every local time of that day
uses the noon offset, so times inside the gap/overlap hour are shifted
silently rather than rejected.
"""

from datetime import date, datetime, time, timedelta, timezone

from .config import validate_timezone


def parse_date(value: str | date) -> date:
    """Accept "YYYY-MM-DD" or a date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(value)


def _reference_instant(day: date) -> datetime:
    return datetime.combine(day, time(12, 0), tzinfo=timezone.utc)


def utc_offset(day: str | date, tz_name: str) -> timedelta:
    """Offset of `tz_name` from UTC on `day` (noon-anchored)."""
    day = parse_date(day)
    reference = _reference_instant(day)
    local = reference.astimezone(validate_timezone(tz_name))
    # Both renderings as naive wall-clock values
    return local.replace(tzinfo=None) - reference.replace(tzinfo=None)


def resolve_local_instant(day: str | date, hour: int, minute: int, tz_name: str) -> datetime:
    """
    Absolute (UTC) instant of local wall-clock `hour:minute` on `day` in `tz_name`.

    `hour`/`minute` may overflow (e.g. minute=90) - they are added as a
    duration to local midnight, which is how slot offsets are walked.
    """
    day = parse_date(day)
    offset = utc_offset(day, tz_name)
    wall_clock = datetime.combine(day, time(0, 0)) + timedelta(hours=hour, minutes=minute)
    return (wall_clock - offset).replace(tzinfo=timezone.utc)


def day_of_week(day: str | date, tz_name: str) -> int:
    """
    Weekday of `day` in `tz_name`, Sunday = 0 … Saturday = 6.

    Read at noon UTC of `day`, so zones more than 12h ahead of UTC
    (Pacific/Auckland in summer) report the following weekday.
    """
    day = parse_date(day)
    local = _reference_instant(day).astimezone(validate_timezone(tz_name))
    # isoweekday: Monday = 1 … Sunday = 7
    return local.isoweekday() % 7


def local_date(instant: datetime, tz_name: str) -> date:
    """Calendar date of `instant` as seen in `tz_name`."""
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(validate_timezone(tz_name)).date()
