# backend/app/services/store/redis_store.py
"""
Redis Persistence Store.

Key format:
  {ns}:item:{pk}|{sk}   - JSON document
  {ns}:index:{pk}       - Sorted Set, member = sk, score = 0
  {ns}:partitions       - Set of partition keys

All index scores are 0, so ZRANGEBYLEX [prefix [prefix\uffff returns
the partition's items with a given sort-key prefix in sort-key order.

Conditional writes: WATCH the item key, compare, MULTI/EXEC.
A concurrent change (WatchError) is reported as ConditionFailed.
"""

import json
import logging
from contextlib import contextmanager
from typing import Callable

from redis import Redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError
from redis.exceptions import WatchError

from ..errors import ConditionFailed, StoreUnavailable
from .base import Condition, Item, check_condition

logger = logging.getLogger(__name__)

LEX_MAX = "\uffff"


def _text(value) -> str:
    return value.decode() if isinstance(value, bytes) else value


def _load(raw) -> Item | None:
    if raw is None:
        return None
    return json.loads(_text(raw))


@contextmanager
def _io_errors():
    try:
        yield
    except (RedisConnectionError, RedisTimeoutError) as e:
        logger.error(f"Redis store unavailable: {e}")
        raise StoreUnavailable(str(e)) from e


class RedisStore:
    """Redis storage wrapper implementing the Persistence Store contract."""

    def __init__(self, redis: Redis, namespace: str = "store"):
        self.redis = redis
        self.namespace = namespace

    def _item_key(self, partition_key: str, sort_key: str) -> str:
        return f"{self.namespace}:item:{partition_key}|{sort_key}"

    def _index_key(self, partition_key: str) -> str:
        return f"{self.namespace}:index:{partition_key}"

    @property
    def _partitions_key(self) -> str:
        return f"{self.namespace}:partitions"

    # ── Read ─────────────────────────────────────────────────────────────

    def get(self, partition_key: str, sort_key: str) -> Item | None:
        with _io_errors():
            return _load(self.redis.get(self._item_key(partition_key, sort_key)))

    def query_by_prefix(self, partition_key: str, sort_key_prefix: str) -> list[Item]:
        with _io_errors():
            members = self.redis.zrangebylex(
                self._index_key(partition_key),
                f"[{sort_key_prefix}",
                f"[{sort_key_prefix}{LEX_MAX}",
            )
            return self._load_many(partition_key, [_text(m) for m in members])

    def scan_by_predicate(self, predicate: Callable[[Item], bool]) -> list[Item]:
        """Full scan over every partition. Only for low-frequency sweeps."""
        result: list[Item] = []
        with _io_errors():
            for raw_pk in self.redis.sscan_iter(self._partitions_key):
                partition_key = _text(raw_pk)
                members = self.redis.zrange(self._index_key(partition_key), 0, -1)
                items = self._load_many(partition_key, [_text(m) for m in members])
                result.extend(item for item in items if predicate(item))
        return result

    def _load_many(self, partition_key: str, sort_keys: list[str]) -> list[Item]:
        if not sort_keys:
            return []
        raw = self.redis.mget([self._item_key(partition_key, sk) for sk in sort_keys])
        return [item for item in (_load(r) for r in raw) if item is not None]

    # ── Write ────────────────────────────────────────────────────────────

    def put(
        self,
        partition_key: str,
        sort_key: str,
        item: Item,
        condition: Condition = None,
    ) -> None:
        key = self._item_key(partition_key, sort_key)
        payload = json.dumps(item)

        with _io_errors():
            if condition is None:
                pipe = self.redis.pipeline()
                self._queue_write(pipe, partition_key, sort_key, payload)
                pipe.execute()
                return

            with self.redis.pipeline() as pipe:
                pipe.watch(key)
                check_condition(_load(pipe.get(key)), condition, partition_key, sort_key)
                pipe.multi()
                self._queue_write(pipe, partition_key, sort_key, payload)
                try:
                    pipe.execute()
                except WatchError as e:
                    raise ConditionFailed(partition_key, sort_key) from e

    def _queue_write(self, pipe, partition_key: str, sort_key: str, payload: str) -> None:
        pipe.set(self._item_key(partition_key, sort_key), payload)
        pipe.zadd(self._index_key(partition_key), {sort_key: 0})
        pipe.sadd(self._partitions_key, partition_key)

    # ── Delete ───────────────────────────────────────────────────────────

    def delete_partition(self, partition_key: str) -> int:
        """
        Delete every item of a partition (tenant offboarding, tests).

        Returns:
            Number of deleted keys.
        """
        with _io_errors():
            members = self.redis.zrange(self._index_key(partition_key), 0, -1)
            keys = [self._item_key(partition_key, _text(m)) for m in members]
            keys.append(self._index_key(partition_key))
            pipe = self.redis.pipeline()
            pipe.delete(*keys)
            pipe.srem(self._partitions_key, partition_key)
            deleted, _ = pipe.execute()
            return deleted
