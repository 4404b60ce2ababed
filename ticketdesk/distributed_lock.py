"""Redis-backed distributed locks with owner-checked release and extension."""

from __future__ import annotations

import threading
import uuid
from typing import Optional

import redis

RELEASE_SCRIPT = """
if redis.call("GET", KEYS[1]) == ARGV[1] then
    return redis.call("DEL", KEYS[1])
else
    return 0
end
"""

EXTEND_SCRIPT = """
if redis.call("GET", KEYS[1]) == ARGV[1] then
    return redis.call("PEXPIRE", KEYS[1], ARGV[2])
else
    return 0
end
"""


class LockError(Exception):
    """A lock operation failed."""


class LockNotAcquiredError(LockError):
    """The lock is held by someone else."""


class LockNotOwnedError(LockError):
    """The lock is no longer held by this owner."""


def _millis(seconds: float) -> int:
    return max(1, int(round(seconds * 1000)))


class DistributedLock:
    def __init__(self, client: redis.Redis, key: str, value: str, ttl: float) -> None:
        self.client = client
        self.key = key
        self.value = value
        self.ttl = ttl

    def release(self) -> None:
        try:
            result = int(self.client.eval(RELEASE_SCRIPT, 1, self.key, self.value))
        except redis.RedisError as exc:
            raise LockError(f"failed to release lock: {exc}") from exc
        if result == 0:
            raise LockNotOwnedError("lock is not owned")

    def extend(self, ttl: float) -> None:
        try:
            result = int(self.client.eval(EXTEND_SCRIPT, 1, self.key, self.value, _millis(ttl)))
        except redis.RedisError as exc:
            raise LockError(f"failed to extend lock: {exc}") from exc
        if result == 0:
            raise LockNotOwnedError("lock is not owned")
        self.ttl = ttl

    def __enter__(self) -> "DistributedLock":
        return self

    def __exit__(self, *exc_info) -> None:
        try:
            self.release()
        except LockNotOwnedError:
            pass


class LockManager:
    def __init__(self, client: redis.Redis) -> None:
        self.client = client

    def acquire_lock(self, key: str, ttl: float) -> DistributedLock:
        """Take the lock "lock:<key>" for ttl seconds or raise LockNotAcquiredError."""
        lock_key = f"lock:{key}"
        lock_value = str(uuid.uuid4())
        try:
            ok = self.client.set(lock_key, lock_value, nx=True, px=_millis(ttl))
        except redis.RedisError as exc:
            raise LockError(f"failed to acquire lock: {exc}") from exc
        if not ok:
            raise LockNotAcquiredError("could not acquire lock")
        return DistributedLock(self.client, lock_key, lock_value, ttl)

    def acquire_lock_with_retry(
        self,
        key: str,
        ttl: float,
        max_retries: int,
        retry_delay: float,
        cancel: Optional[threading.Event] = None,
    ) -> DistributedLock:
        """Try up to max_retries times, waiting retry_delay seconds between attempts."""
        last: LockError = LockNotAcquiredError("could not acquire lock")
        for _ in range(max_retries):
            try:
                return self.acquire_lock(key, ttl)
            except LockNotAcquiredError as exc:
                last = exc
            waiter = cancel or threading.Event()
            if waiter.wait(retry_delay):
                raise LockError("lock acquisition cancelled")
        raise last