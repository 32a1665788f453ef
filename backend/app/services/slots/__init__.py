# backend/app/services/slots/__init__.py
"""
Slots calculation module.

Timezone: wall-clock → instant for a tenant's IANA zone
Calculator: bookable slots of one day, marked available/unavailable
"""

from .config import (
    BookingConfig,
    CancellationConfig,
    DaySchedule,
    WeeklySchedule,
    get_default_booking_config,
    get_default_cancellation_config,
)
from .calculator import ExistingEvent, TimeSlot, generate_slots, has_available_slot
from .timezone import day_of_week, resolve_local_instant

__all__ = [
    "BookingConfig",
    "CancellationConfig",
    "DaySchedule",
    "WeeklySchedule",
    "get_default_booking_config",
    "get_default_cancellation_config",
    "ExistingEvent",
    "TimeSlot",
    "generate_slots",
    "has_available_slot",
    "day_of_week",
    "resolve_local_instant",
]
