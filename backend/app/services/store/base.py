# backend/app/services/store/base.py
"""
Persistence Store contract.

A tenant-partitioned key/value store:
  get(pk, sk)                         → item | None
  put(pk, sk, item, condition=None)   → conditional write
  query_by_prefix(pk, prefix)         → items in sort-key order
  scan_by_predicate(predicate)        → all matching items (low frequency)

Conditions:
  None          - unconditional
  ABSENT        - item must not exist yet
  {field: val}  - current item must exist and match every field
A failed condition raises ConditionFailed.
"""

from typing import Any, Callable, Mapping, Protocol

from ..errors import ConditionFailed


class _Absent:
    def __repr__(self) -> str:
        return "ABSENT"


ABSENT = _Absent()

Item = dict[str, Any]
Condition = Mapping[str, Any] | _Absent | None


class PersistenceStore(Protocol):
    def get(self, partition_key: str, sort_key: str) -> Item | None: ...

    def put(
        self,
        partition_key: str,
        sort_key: str,
        item: Item,
        condition: Condition = None,
    ) -> None: ...

    def query_by_prefix(self, partition_key: str, sort_key_prefix: str) -> list[Item]: ...

    def scan_by_predicate(self, predicate: Callable[[Item], bool]) -> list[Item]: ...


def check_condition(
    current: Item | None,
    condition: Condition,
    partition_key: str,
    sort_key: str,
) -> None:
    """Raise ConditionFailed unless `current` satisfies `condition`."""
    if condition is None:
        return
    if condition is ABSENT:
        if current is not None:
            raise ConditionFailed(partition_key, sort_key)
        return
    if current is None:
        raise ConditionFailed(partition_key, sort_key)
    for field, expected in condition.items():
        if current.get(field) != expected:
            raise ConditionFailed(partition_key, sort_key)
