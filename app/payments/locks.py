"""
Redis locks for payout processing.

A payout run may be started by the beat schedule, the management command and
an admin batch at the same time. DistributedLock makes sure only one worker
processes a given payout; the database row lock inside the run covers the
ledger write itself.

Usage:
    from payments.locks import DistributedLock, payout_lock

    with payout_lock(payout.id):
        ...

    lock = DistributedLock("payout:schedule", ttl=300, blocking=False)
    if lock.acquire():
        try:
            ...
        finally:
            lock.release()
"""

from __future__ import annotations

import time
import uuid
from typing import TYPE_CHECKING

from django_redis import get_redis_connection

from payments.exceptions import LockAcquisitionError

if TYPE_CHECKING:
    from typing import Any

    from redis import Redis


PAYOUT_LOCK_TTL = 120
PAYOUT_LOCK_TIMEOUT = 10.0
SCHEDULE_LOCK_TTL = 300


class DistributedLock:
    """
    Token-owned Redis lock with a TTL.

    The key is set with NX and an expiry, so a worker that dies mid-run
    frees the lock after ttl seconds. Release and extend only act if the
    stored token is ours.

    Args:
        key: Lock name, stored as "lock:<key>"
        ttl: Seconds before the lock expires on its own
        blocking: Wait for the lock instead of failing immediately
        timeout: Longest wait in blocking mode, in seconds

    Raises:
        LockAcquisitionError: From acquire() or on entering the context
            when the lock is held elsewhere
    """

    RELEASE_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("del", KEYS[1])
    else
        return 0
    end
    """

    EXTEND_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("expire", KEYS[1], ARGV[2])
    else
        return 0
    end
    """

    POLL_INTERVAL = 0.05

    def __init__(
        self,
        key: str,
        ttl: int = 30,
        blocking: bool = True,
        timeout: float = 10.0,
    ) -> None:
        self.key = f"lock:{key}"
        self.ttl = ttl
        self.blocking = blocking
        self.timeout = timeout
        self._token: str | None = None
        self._redis: Redis | None = None

    @property
    def redis(self) -> Redis:
        if self._redis is None:
            self._redis = get_redis_connection("default")
        return self._redis

    @property
    def is_held(self) -> bool:
        return self._token is not None

    def acquire(self) -> bool:
        token = uuid.uuid4().hex
        deadline = time.monotonic() + (self.timeout if self.blocking else 0)

        while True:
            if self.redis.set(self.key, token, nx=True, ex=self.ttl):
                self._token = token
                return True
            if time.monotonic() >= deadline:
                break
            time.sleep(self.POLL_INTERVAL)

        raise LockAcquisitionError(
            f"Lock '{self.key}' is held by another worker",
            details={"key": self.key, "timeout": self.timeout if self.blocking else 0},
        )

    def release(self) -> bool:
        """Release the lock if this instance owns it. Safe to call twice."""
        if self._token is None:
            return False
        released = self.redis.eval(self.RELEASE_SCRIPT, 1, self.key, self._token)
        self._token = None
        return bool(released)

    def extend(self, ttl: int | None = None) -> bool:
        """Reset the expiry to ttl (default: the original ttl)."""
        if self._token is None:
            return False
        extended = self.redis.eval(self.EXTEND_SCRIPT, 1, self.key, self._token, ttl or self.ttl)
        return bool(extended)

    def __enter__(self) -> DistributedLock:
        self.acquire()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> bool:
        self.release()
        return False


def payout_lock(payout_id: Any) -> DistributedLock:
    """Lock guarding one payout's processing run."""
    return DistributedLock(
        f"payout:process:{payout_id}",
        ttl=PAYOUT_LOCK_TTL,
        timeout=PAYOUT_LOCK_TIMEOUT,
    )


def schedule_lock() -> DistributedLock:
    """Non-blocking lock around a scheduling pass, shared by beat and the command."""
    return DistributedLock("payout:schedule", ttl=SCHEDULE_LOCK_TTL, blocking=False)


__all__ = [
    "PAYOUT_LOCK_TIMEOUT",
    "PAYOUT_LOCK_TTL",
    "SCHEDULE_LOCK_TTL",
    "DistributedLock",
    "payout_lock",
    "schedule_lock",
]
