# backend/app/services/store/__init__.py
"""
Persistence Store adapters.

All adapters share the same contract (see base.py), so the waitlist engine
runs unchanged on Redis, SQL or in-memory storage.
"""

from .base import ABSENT, PersistenceStore, check_condition
from .memory import MemoryStore
from .redis_store import RedisStore
from .sql_store import SqlStore

__all__ = [
    "ABSENT",
    "PersistenceStore",
    "check_condition",
    "MemoryStore",
    "RedisStore",
    "SqlStore",
]
