# backend/app/schemas/slots.py
"""
Pydantic schemas for slots and booking config API.
"""

from datetime import date, datetime
from pydantic import BaseModel, Field


class DayScheduleSchema(BaseModel):
    enabled: bool = False
    start_hour: int = Field(9, alias="startHour", ge=0, lt=24)
    end_hour: int = Field(17, alias="endHour", ge=0, lt=24)

    model_config = {"populate_by_name": True}


class BookingConfigUpdate(BaseModel):
    """Tenant booking config. Omitted fields keep the defaults."""
    timezone: str | None = None
    slot_duration_minutes: int | None = Field(None, alias="slotDurationMinutes", gt=0)
    weekly_schedule: dict[str, DayScheduleSchema] | None = Field(None, alias="weeklySchedule")

    model_config = {"populate_by_name": True}

    def to_config_dict(self) -> dict:
        # Fields left out of the request keep the default schedule's values
        return self.model_dump(by_alias=True, exclude_none=True, exclude_unset=True)


class BookingConfigRead(BaseModel):
    tenant_id: str
    timezone: str
    slot_duration_minutes: int
    weekly_schedule: dict[str, DayScheduleSchema]


class SlotInfo(BaseModel):
    """Information about a single slot."""
    start_time: datetime
    end_time: datetime
    available: bool

    model_config = {"from_attributes": True}


class SlotsDayResponse(BaseModel):
    """Slots of one day for a tenant."""
    tenant_id: str
    date: date
    timezone: str
    slot_duration_minutes: int
    slots: list[SlotInfo]
