"""
backend/app/services/events.py

Event Notifier: pushes waitlist events to the Redis `events:p2p` queue,
consumed by the delivery worker (email / Telegram).

Events:
- waitlist_slot_available - a waiting visitor was offered a freed slot
- waitlist_joined - confirmation with the visitor's queue position
"""

import json
import logging
import time
from datetime import datetime
from typing import Protocol

from redis import Redis

logger = logging.getLogger(__name__)

P2P_QUEUE = "events:p2p"


class EventNotifier(Protocol):
    def notify(
        self,
        visitor_email: str,
        scope_key: str,
        expires_at: datetime,
        tenant_id: str | None = None,
    ) -> bool: ...

    def joined(
        self,
        visitor_email: str,
        scope_key: str,
        position: int,
        tenant_id: str | None = None,
    ) -> bool: ...


def emit_event(redis: Redis, event_type: str, payload: dict) -> bool:
    """
    Emit a p2p event (instant delivery).

    Returns False if the event could not be queued; the caller's state
    change stands either way.
    """
    event = {
        "type": event_type,
        **payload,
        "ts": int(time.time()),
    }
    try:
        redis.rpush(P2P_QUEUE, json.dumps(event))
        logger.info(f"Event emitted: {event_type} → {P2P_QUEUE}")
        return True
    except Exception as e:
        logger.error(f"Failed to emit event {event_type}: {e}")
        return False


class RedisEventNotifier:
    def __init__(self, redis: Redis):
        self.redis = redis

    def notify(
        self,
        visitor_email: str,
        scope_key: str,
        expires_at: datetime,
        tenant_id: str | None = None,
    ) -> bool:
        return emit_event(self.redis, "waitlist_slot_available", {
            "tenant_id": tenant_id,
            "visitor_email": visitor_email,
            "scope_key": scope_key,
            "expires_at": expires_at.isoformat(),
        })

    def joined(
        self,
        visitor_email: str,
        scope_key: str,
        position: int,
        tenant_id: str | None = None,
    ) -> bool:
        return emit_event(self.redis, "waitlist_joined", {
            "tenant_id": tenant_id,
            "visitor_email": visitor_email,
            "scope_key": scope_key,
            "position": position,
        })
