# backend/app/routers/slots.py
"""
Slots API endpoints.

PUT /tenants/{tenant_id}/booking-config - Validate and save booking config
GET /tenants/{tenant_id}/booking-config - Effective config (defaults merged)
GET /tenants/{tenant_id}/slots          - Slots of one day
"""

from datetime import date, datetime, timezone
from fastapi import APIRouter, Depends, HTTPException, Query, status

from ..deps import get_orchestrator, get_tenants
from ..schemas.slots import (
    BookingConfigRead,
    BookingConfigUpdate,
    SlotInfo,
    SlotsDayResponse,
)
from ..services.errors import ConfigurationError, StoreUnavailable
from ..services.scheduler import SchedulingOrchestrator
from ..services.slots.config import BookingConfig
from ..services.tenants import TenantRepository


router = APIRouter(prefix="/tenants/{tenant_id}", tags=["slots"])


def _config_read(tenant_id: str, config: BookingConfig) -> BookingConfigRead:
    data = config.to_dict()
    return BookingConfigRead(
        tenant_id=tenant_id,
        timezone=data["timezone"],
        slot_duration_minutes=data["slotDurationMinutes"],
        weekly_schedule=data["weeklySchedule"],
    )


@router.get("/booking-config", response_model=BookingConfigRead)
def get_booking_config(
    tenant_id: str,
    tenants: TenantRepository = Depends(get_tenants),
):
    try:
        config = tenants.get_booking_config(tenant_id)
    except StoreUnavailable as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
    return _config_read(tenant_id, config)


@router.put("/booking-config", response_model=BookingConfigRead)
def put_booking_config(
    tenant_id: str,
    data: BookingConfigUpdate,
    tenants: TenantRepository = Depends(get_tenants),
):
    try:
        config = BookingConfig.from_dict(data.to_config_dict())
        tenants.save_booking_config(tenant_id, config)
    except ConfigurationError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    except StoreUnavailable as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
    return _config_read(tenant_id, config)


@router.get("/slots", response_model=SlotsDayResponse)
def get_slots_day(
    tenant_id: str,
    target_date: date = Query(..., alias="date"),
    duration: int | None = Query(None, gt=0, description="Product duration override, minutes"),
    orchestrator: SchedulingOrchestrator = Depends(get_orchestrator),
):
    """Bookable slots of a day in the tenant timezone (past slots omitted)."""
    try:
        config = orchestrator.tenants.get_booking_config(tenant_id)
        slots = orchestrator.available_slots(
            tenant_id, target_date.isoformat(), duration, datetime.now(timezone.utc), config
        )
        config = config.with_slot_duration(duration)
    except ConfigurationError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    except StoreUnavailable as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))

    return SlotsDayResponse(
        tenant_id=tenant_id,
        date=target_date,
        timezone=config.timezone,
        slot_duration_minutes=config.slot_duration_minutes,
        slots=[
            SlotInfo(start_time=s.start_time, end_time=s.end_time, available=s.available)
            for s in slots
        ],
    )
