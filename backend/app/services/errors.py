# backend/app/services/errors.py
"""
Scheduling engine errors.

Permanent:
  ConfigurationError  - malformed booking/cancellation config
  DuplicateEntry      - visitor already queued for the scope
  InvalidTransition   - waitlist transition not allowed from current state
  EntryNotFound       - unknown waitlist entry

Transient (safe to retry):
  StoreUnavailable    - store I/O failure or scope lock timeout
  ConditionFailed     - conditional write lost a race
"""


class SchedulingError(Exception):
    """Base class for all engine errors."""


class ConfigurationError(SchedulingError, ValueError):
    pass


class DuplicateEntry(SchedulingError):
    def __init__(self, tenant_id: str, scope_key: str, visitor_email: str):
        self.tenant_id = tenant_id
        self.scope_key = scope_key
        self.visitor_email = visitor_email
        super().__init__(
            f"{visitor_email} is already on the waitlist for {scope_key}"
        )


class InvalidTransition(SchedulingError):
    def __init__(self, entry_id: str, status: str, target: str, detail: str = ""):
        self.entry_id = entry_id
        self.status = status
        self.target = target
        message = f"Cannot move waitlist entry {entry_id} from {status} to {target}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class EntryNotFound(SchedulingError):
    def __init__(self, tenant_id: str, scope_key: str, entry_id: str):
        self.entry_id = entry_id
        super().__init__(
            f"Waitlist entry {entry_id} not found in {tenant_id}/{scope_key}"
        )


class StoreUnavailable(SchedulingError):
    pass


class ConditionFailed(StoreUnavailable):
    def __init__(self, partition_key: str, sort_key: str):
        self.partition_key = partition_key
        self.sort_key = sort_key
        super().__init__(f"Conditional write failed for {partition_key}/{sort_key}")
