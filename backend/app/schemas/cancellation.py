# backend/app/schemas/cancellation.py

from datetime import datetime
from typing import Literal
from pydantic import BaseModel, Field


class RefundPreviewRequest(BaseModel):
    paid_amount_cents: int = Field(ge=0)
    event_start_time: datetime
    cancelled_by: Literal["visitor", "tenant"] = "visitor"


class RefundPreviewResponse(BaseModel):
    amount_cents: int
    is_full_refund: bool
    reason: str
    cancellation_deadline_hours: float
    is_before_deadline: bool
