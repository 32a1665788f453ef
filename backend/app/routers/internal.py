# backend/app/routers/internal.py
"""
Internal API endpoints for trusted consumers.

Not meant for public routing. Called by trusted services, e.g. an external
cron when WAITLIST_TICK_ENABLED=false.
"""

import logging

from fastapi import APIRouter, Depends

from ..deps import get_orchestrator
from ..schemas.waitlist import TickResponse
from ..services.scheduler import SchedulingOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/internal", tags=["internal"])


@router.post("/waitlist/tick", response_model=TickResponse)
def run_waitlist_tick(orchestrator: SchedulingOrchestrator = Depends(get_orchestrator)):
    """Run one waitlist sweep now: expire stale offers, promote next in line."""
    result = orchestrator.on_tick()
    return TickResponse(
        scopes=result.scopes,
        expired=result.expired,
        past_date_cleaned=result.past_cleaned,
        notified=result.notified,
        errors=result.errors,
    )
