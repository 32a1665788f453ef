# backend/app/routers/cancellation.py

from fastapi import APIRouter, Depends, HTTPException, status

from ..deps import get_orchestrator
from ..schemas.cancellation import RefundPreviewRequest, RefundPreviewResponse
from ..services.cancellation import is_before_deadline
from ..services.errors import StoreUnavailable
from ..services.scheduler import SchedulingOrchestrator

router = APIRouter(prefix="/tenants/{tenant_id}", tags=["cancellation"])


@router.post("/refund-preview", response_model=RefundPreviewResponse)
def refund_preview(
    tenant_id: str,
    data: RefundPreviewRequest,
    orchestrator: SchedulingOrchestrator = Depends(get_orchestrator),
):
    """Refund a cancellation would produce right now. Nothing is charged or refunded."""
    try:
        config = orchestrator.tenants.get_cancellation_config(tenant_id)
        refund = orchestrator.preview_cancellation(
            tenant_id, data.paid_amount_cents, data.event_start_time, data.cancelled_by
        )
    except StoreUnavailable as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))

    return RefundPreviewResponse(
        amount_cents=refund.amount_cents,
        is_full_refund=refund.is_full_refund,
        reason=refund.reason,
        cancellation_deadline_hours=config.cancellation_deadline_hours,
        is_before_deadline=is_before_deadline(data.event_start_time, config),
    )
