# backend/app/schemas/waitlist.py

from datetime import datetime
from typing import Literal, Optional
from pydantic import BaseModel, Field, field_validator


class WaitlistJoin(BaseModel):
    visitor_email: str = Field(description="Visitor email, used for duplicate detection")
    visitor_name: str = ""

    @field_validator("visitor_email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        v = v.strip().lower()
        if "@" not in v:
            raise ValueError("Invalid email")
        return v


class WaitlistEntryRead(BaseModel):
    id: str
    tenant_id: str
    scope_key: str
    visitor_email: str
    visitor_name: str
    position: int
    status: Literal["waiting", "notified", "booked", "expired"]
    created_at: datetime
    notified_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    booked_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class CapacityFreedResponse(BaseModel):
    notified: bool
    entry: Optional[WaitlistEntryRead] = None


class TickResponse(BaseModel):
    scopes: int
    expired: int
    past_date_cleaned: int
    notified: int
    errors: int
