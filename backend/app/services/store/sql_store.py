# backend/app/services/store/sql_store.py
"""
SQL Persistence Store (SQLAlchemy).

One row per item in `store_items` (partition_key, sort_key, data JSON,
version). Conditional writes are optimistic: the condition is checked on
the row as read, and the UPDATE only applies if `version` is unchanged.
Inserts guarded by ABSENT rely on the primary key.
"""

import json
import logging
from typing import Callable

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

from ...models.store import StoreItems
from ..errors import ConditionFailed, StoreUnavailable
from .base import Condition, Item, check_condition

logger = logging.getLogger(__name__)


class SqlStore:
    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    # ── Read ─────────────────────────────────────────────────────────────

    def get(self, partition_key: str, sort_key: str) -> Item | None:
        db = self._session_factory()
        try:
            row = db.get(StoreItems, (partition_key, sort_key))
            return json.loads(row.data) if row else None
        except OperationalError as e:
            raise StoreUnavailable(str(e)) from e
        finally:
            db.close()

    def query_by_prefix(self, partition_key: str, sort_key_prefix: str) -> list[Item]:
        db = self._session_factory()
        try:
            rows = (
                db.query(StoreItems)
                .filter(
                    StoreItems.partition_key == partition_key,
                    StoreItems.sort_key.startswith(sort_key_prefix, autoescape=True),
                )
                .order_by(StoreItems.sort_key)
                .all()
            )
            return [json.loads(row.data) for row in rows]
        except OperationalError as e:
            raise StoreUnavailable(str(e)) from e
        finally:
            db.close()

    def scan_by_predicate(self, predicate: Callable[[Item], bool]) -> list[Item]:
        db = self._session_factory()
        try:
            result = []
            for row in db.query(StoreItems).yield_per(500):
                item = json.loads(row.data)
                if predicate(item):
                    result.append(item)
            return result
        except OperationalError as e:
            raise StoreUnavailable(str(e)) from e
        finally:
            db.close()

    # ── Write ────────────────────────────────────────────────────────────

    def put(
        self,
        partition_key: str,
        sort_key: str,
        item: Item,
        condition: Condition = None,
    ) -> None:
        payload = json.dumps(item)
        db = self._session_factory()
        try:
            row = db.get(StoreItems, (partition_key, sort_key))
            current = json.loads(row.data) if row else None
            check_condition(current, condition, partition_key, sort_key)

            if row is None:
                db.add(StoreItems(
                    partition_key=partition_key,
                    sort_key=sort_key,
                    data=payload,
                    version=1,
                ))
                db.commit()
                return

            self._update_row(db, row, payload, guarded=condition is not None)
            db.commit()
        except IntegrityError as e:
            db.rollback()
            raise ConditionFailed(partition_key, sort_key) from e
        except OperationalError as e:
            db.rollback()
            logger.error(f"SQL store unavailable: {e}")
            raise StoreUnavailable(str(e)) from e
        finally:
            db.close()

    def _update_row(self, db: Session, row: StoreItems, payload: str, guarded: bool) -> None:
        stmt = update(StoreItems).where(
            StoreItems.partition_key == row.partition_key,
            StoreItems.sort_key == row.sort_key,
        )
        if guarded:
            stmt = stmt.where(StoreItems.version == row.version)

        result = db.execute(
            stmt.values(data=payload, version=StoreItems.version + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.rollback()
            raise ConditionFailed(row.partition_key, row.sort_key)
