# backend/app/services/store/memory.py
"""
In-memory Persistence Store.

Used for local development (STORE_BACKEND=memory) and tests.
Condition check + write happen under one lock, so conditional writes are
atomic within the process.
"""

import copy
import threading
from typing import Callable

from .base import Condition, Item, check_condition


class MemoryStore:
    def __init__(self):
        self._partitions: dict[str, dict[str, Item]] = {}
        self._lock = threading.Lock()

    def get(self, partition_key: str, sort_key: str) -> Item | None:
        with self._lock:
            item = self._partitions.get(partition_key, {}).get(sort_key)
            return copy.deepcopy(item) if item is not None else None

    def put(
        self,
        partition_key: str,
        sort_key: str,
        item: Item,
        condition: Condition = None,
    ) -> None:
        with self._lock:
            partition = self._partitions.setdefault(partition_key, {})
            check_condition(partition.get(sort_key), condition, partition_key, sort_key)
            partition[sort_key] = copy.deepcopy(item)

    def query_by_prefix(self, partition_key: str, sort_key_prefix: str) -> list[Item]:
        with self._lock:
            partition = self._partitions.get(partition_key, {})
            return [
                copy.deepcopy(partition[sk])
                for sk in sorted(partition)
                if sk.startswith(sort_key_prefix)
            ]

    def scan_by_predicate(self, predicate: Callable[[Item], bool]) -> list[Item]:
        with self._lock:
            items = [
                copy.deepcopy(item)
                for partition in self._partitions.values()
                for item in partition.values()
            ]
        return [item for item in items if predicate(item)]

    def truncate(self) -> None:
        with self._lock:
            self._partitions.clear()
