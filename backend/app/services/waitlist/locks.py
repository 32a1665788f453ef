# backend/app/services/waitlist/locks.py
"""
Per-scope mutual exclusion (in-process).

One re-entrant lock per (tenant_id, scope_key). Different scopes never
contend. Cross-process exclusion comes from conditional store writes.
A lock is dropped once no thread holds or waits for it.
"""

import threading
from contextlib import contextmanager

from ..errors import StoreUnavailable


class _ScopeLock:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = threading.RLock()
        self.users = 0


class ScopeLocks:
    def __init__(self):
        self._locks: dict[tuple[str, str], _ScopeLock] = {}
        self._guard = threading.Lock()

    def __len__(self) -> int:
        return len(self._locks)

    def _checkout(self, key: tuple[str, str]) -> _ScopeLock:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = _ScopeLock()
            entry.users += 1
            return entry

    def _checkin(self, key: tuple[str, str], entry: _ScopeLock) -> None:
        with self._guard:
            entry.users -= 1
            if entry.users == 0:
                del self._locks[key]

    @contextmanager
    def hold(self, tenant_id: str, scope_key: str, timeout: float | None = None):
        """
        Hold the scope lock.

        Raises:
            StoreUnavailable: lock not acquired within `timeout` seconds
                (nothing was applied, safe to retry).
        """
        key = (tenant_id, scope_key)
        entry = self._checkout(key)
        try:
            acquired = entry.lock.acquire(timeout=-1 if timeout is None else timeout)
            if not acquired:
                raise StoreUnavailable(
                    f"Timed out after {timeout}s waiting for waitlist scope {tenant_id}/{scope_key}"
                )
            try:
                yield
            finally:
                entry.lock.release()
        finally:
            self._checkin(key, entry)
