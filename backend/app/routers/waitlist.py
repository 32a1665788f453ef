# backend/app/routers/waitlist.py
"""
Waitlist API endpoints.

Scope key: a date ("YYYY-MM-DD") for day bookings, or a product id for
capacity-limited offerings.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from ..deps import get_orchestrator
from ..schemas.waitlist import CapacityFreedResponse, WaitlistEntryRead, WaitlistJoin
from ..services.errors import (
    DuplicateEntry,
    EntryNotFound,
    InvalidTransition,
    StoreUnavailable,
)
from ..services.scheduler import SchedulingOrchestrator
from ..services.waitlist.models import WaitlistEntry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tenants/{tenant_id}/waitlist", tags=["waitlist"])


def _entry_read(entry: WaitlistEntry) -> WaitlistEntryRead:
    item = entry.to_item()
    item.pop("entity_type")
    return WaitlistEntryRead(**item)


@router.get("/{scope_key}", response_model=list[WaitlistEntryRead])
def list_waitlist(
    tenant_id: str,
    scope_key: str,
    orchestrator: SchedulingOrchestrator = Depends(get_orchestrator),
):
    try:
        entries = orchestrator.waitlist.list_entries(tenant_id, scope_key)
    except StoreUnavailable as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
    return [_entry_read(e) for e in entries]


@router.post("/{scope_key}", response_model=WaitlistEntryRead, status_code=status.HTTP_201_CREATED)
def join_waitlist(
    tenant_id: str,
    scope_key: str,
    data: WaitlistJoin,
    orchestrator: SchedulingOrchestrator = Depends(get_orchestrator),
):
    try:
        entry = orchestrator.join(tenant_id, scope_key, data.visitor_email, data.visitor_name)
    except DuplicateEntry:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Already on the waitlist")
    except StoreUnavailable as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
    return _entry_read(entry)


@router.post("/{scope_key}/capacity-freed", response_model=CapacityFreedResponse)
def capacity_freed(
    tenant_id: str,
    scope_key: str,
    orchestrator: SchedulingOrchestrator = Depends(get_orchestrator),
):
    """Called after a booking in the scope was cancelled or deleted."""
    try:
        promoted = orchestrator.on_capacity_freed(tenant_id, scope_key)
    except StoreUnavailable as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
    return CapacityFreedResponse(
        notified=promoted is not None,
        entry=_entry_read(promoted) if promoted else None,
    )


@router.post("/{scope_key}/{entry_id}/confirm", response_model=WaitlistEntryRead)
def confirm_waitlist_booking(
    tenant_id: str,
    scope_key: str,
    entry_id: str,
    orchestrator: SchedulingOrchestrator = Depends(get_orchestrator),
):
    try:
        entry = orchestrator.confirm_booking(tenant_id, scope_key, entry_id)
    except EntryNotFound:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")
    except InvalidTransition as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except StoreUnavailable as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
    return _entry_read(entry)
