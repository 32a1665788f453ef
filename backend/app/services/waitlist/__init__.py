# backend/app/services/waitlist/__init__.py
"""
FIFO waitlist per (tenant, scope): waiting → notified → booked | expired.
"""

from .locks import ScopeLocks
from .models import WaitlistEntry, WaitlistStatus
from .retry import retry_transient
from .service import ExpiryResult, WaitlistService

__all__ = [
    "ScopeLocks",
    "WaitlistEntry",
    "WaitlistStatus",
    "retry_transient",
    "ExpiryResult",
    "WaitlistService",
]
