# backend/app/services/cancellation.py
"""
Cancellation refund policy.

Decides how much of a paid booking is refunded when it is cancelled:
- visitor cancels before the deadline → full refund
- visitor cancels after the deadline → late_cancellation_refund_percent
- tenant (host) cancels → always full refund

Pure functions - no payment capture happens here.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal

from .slots.config import CancellationConfig, get_default_cancellation_config

ACTOR_VISITOR = "visitor"
ACTOR_TENANT = "tenant"

HOST_CANCELLED_REASON = "host-cancelled."


@dataclass(frozen=True)
class RefundResult:
    amount_cents: int
    is_full_refund: bool
    reason: str

    def to_dict(self) -> dict:
        return {
            "amountCents": self.amount_cents,
            "isFullRefund": self.is_full_refund,
            "reason": self.reason,
        }


def is_before_deadline(
    event_start_time: datetime | str,
    config: CancellationConfig | None = None,
    now: datetime | None = None,
) -> bool:
    """True if there are still at least cancellation_deadline_hours until the event."""
    config = config or get_default_cancellation_config()
    remaining = _instant(event_start_time) - _instant(now or datetime.now(timezone.utc))
    return remaining >= timedelta(hours=config.cancellation_deadline_hours)


def calculate_visitor_refund(
    paid_amount_cents: int,
    event_start_time: datetime | str,
    config: CancellationConfig | None = None,
    now: datetime | None = None,
) -> RefundResult:
    config = config or get_default_cancellation_config()
    hours = _format_number(config.cancellation_deadline_hours)

    if is_before_deadline(event_start_time, config, now):
        return RefundResult(
            amount_cents=paid_amount_cents,
            is_full_refund=True,
            reason=f"Cancelled at least {hours} hours before the booking: full refund.",
        )

    percent = config.late_cancellation_refund_percent
    if percent == 0:
        return RefundResult(
            amount_cents=0,
            is_full_refund=paid_amount_cents == 0,
            reason=f"Cancelled less than {hours} hours before the booking: no refund.",
        )

    amount = _round_cents(paid_amount_cents, percent)
    return RefundResult(
        amount_cents=amount,
        is_full_refund=amount == paid_amount_cents,
        reason=(
            f"Cancelled less than {hours} hours before the booking: "
            f"{_format_number(percent)}% refund."
        ),
    )


def calculate_tenant_refund(paid_amount_cents: int) -> RefundResult:
    return RefundResult(
        amount_cents=paid_amount_cents,
        is_full_refund=True,
        reason=HOST_CANCELLED_REASON,
    )


def calculate_refund(
    paid_amount_cents: int,
    event_start_time: datetime | str,
    config: CancellationConfig | None = None,
    actor: str = ACTOR_VISITOR,
    now: datetime | None = None,
) -> RefundResult:
    """Dispatch on who cancels. Unpaid bookings have nothing to refund."""
    if paid_amount_cents <= 0:
        return RefundResult(amount_cents=0, is_full_refund=True, reason="No payment to refund")
    if actor == ACTOR_TENANT:
        return calculate_tenant_refund(paid_amount_cents)
    return calculate_visitor_refund(paid_amount_cents, event_start_time, config, now)


# ── Helpers ──────────────────────────────────────────────────────────────


def _round_cents(paid_amount_cents: int, percent: float) -> int:
    # Half-up, never truncated; stays within [0, paid]
    value = Decimal(paid_amount_cents) * Decimal(str(percent)) / Decimal(100)
    amount = int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))
    return max(0, min(amount, paid_amount_cents))


def _instant(value: datetime | str) -> datetime:
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def _format_number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)
