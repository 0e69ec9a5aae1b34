#!/usr/bin/env python3
"""
Session lock backends for the chatdesk backend.

A lock is held per phone number while one inbound event is processed, so a
second delivery of the same (or a near-simultaneous) webhook event is dropped.
Redis is used when configured; otherwise the lock lives in the database.
"""

from datetime import timedelta
from typing import Callable, Optional

import redis
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from ..data.models import SessionLock, utcnow
from ..utils.logger import get_logger

logger = get_logger("locks")


class StoreSessionLock:
    """Time-boxed lock stored as one row per phone number."""

    def __init__(self, store, clock: Callable = utcnow):
        self.store = store
        self.clock = clock

    def is_locked(self, phone_number: str) -> bool:
        row = self.store.select_one(
            SessionLock,
            SessionLock.phone_number == phone_number,
            SessionLock.is_locked.is_(True),
        )
        if row is None:
            return False

        if row.locked_until <= self.clock():
            # Expired lock, clear it lazily
            self.store.update(
                SessionLock,
                (SessionLock.phone_number == phone_number, SessionLock.locked_until == row.locked_until),
                {"is_locked": False},
            )
            return False
        return True

    def acquire(self, phone_number: str, session_ref: str, duration_seconds: int) -> bool:
        now = self.clock()
        values = {
            "session_ref": session_ref,
            "acquired_at": now,
            "locked_until": now + timedelta(seconds=duration_seconds),
            "is_locked": True,
            "reason": "Message processing in progress",
        }
        # Conditional write: only take over a row that is free or expired
        taken = self.store.update(
            SessionLock,
            (
                SessionLock.phone_number == phone_number,
                or_(SessionLock.is_locked.is_(False), SessionLock.locked_until <= now),
            ),
            values,
        )
        if taken:
            return True

        try:
            self.store.insert(SessionLock, phone_number=phone_number, **values)
            return True
        except IntegrityError:
            # Row exists and is held by someone else
            return False

    def release(self, phone_number: str, session_ref: str) -> bool:
        """Clear the lock only while `session_ref` still holds it."""
        released = self.store.update(
            SessionLock,
            (
                SessionLock.phone_number == phone_number,
                SessionLock.session_ref == session_ref,
                SessionLock.is_locked.is_(True),
            ),
            {"is_locked": False},
        )
        return bool(released)


# Compare-and-delete so an expired holder cannot drop a newer lock
_RELEASE_SCRIPT = """
if redis.call("GET", KEYS[1]) == ARGV[1] then
    return redis.call("DEL", KEYS[1])
end
return 0
"""


class RedisSessionLock:
    """Same contract as StoreSessionLock, using SET NX PX."""

    prefix = "chatdesk:lock:"

    def __init__(self, client):
        self.client = client

    def _key(self, phone_number: str) -> str:
        return f"{self.prefix}{phone_number}"

    def is_locked(self, phone_number: str) -> bool:
        # Redis drops the key itself once the TTL passes
        return bool(self.client.exists(self._key(phone_number)))

    def acquire(self, phone_number: str, session_ref: str, duration_seconds: int) -> bool:
        return bool(self.client.set(self._key(phone_number), session_ref or "1",
                                    nx=True, px=int(duration_seconds * 1000)))

    def release(self, phone_number: str, session_ref: str) -> bool:
        return bool(self.client.eval(_RELEASE_SCRIPT, 1, self._key(phone_number), session_ref or "1"))


def build_session_lock(store, redis_url: Optional[str] = None, clock: Callable = utcnow):
    """Use Redis when it is configured and reachable, the database otherwise."""
    if redis_url:
        try:
            client = redis.Redis.from_url(redis_url, decode_responses=True)
            # Test Redis connection
            client.ping()
            logger.info("[LOCK] Using Redis for session locks")
            return RedisSessionLock(client)
        except redis.RedisError as e:
            logger.warning("[LOCK] Redis not available (%s), using database session locks", e)
    return StoreSessionLock(store, clock=clock)
