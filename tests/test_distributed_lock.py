import threading
import time

import pytest
import redis

from ticketdesk.distributed_lock import (
    LockError,
    LockManager,
    LockNotAcquiredError,
    LockNotOwnedError,
)


class FakeRedis:
    """In-memory stand-in for the few Redis commands the lock uses."""

    def __init__(self):
        self.data = {}
        self.mutex = threading.Lock()

    def _alive(self, key):
        entry = self.data.get(key)
        if entry and entry[1] is not None and time.monotonic() >= entry[1]:
            del self.data[key]
            return None
        return entry

    def set(self, key, value, nx=False, px=None):
        with self.mutex:
            if nx and self._alive(key):
                return None
            expiry = time.monotonic() + px / 1000 if px else None
            self.data[key] = (value, expiry)
            return True

    def eval(self, script, numkeys, key, value, *args):
        with self.mutex:
            entry = self._alive(key)
            if not entry or entry[0] != value:
                return 0
            if "PEXPIRE" in script:
                self.data[key] = (value, time.monotonic() + int(args[0]) / 1000)
            else:
                del self.data[key]
            return 1


class BrokenRedis:
    def set(self, *args, **kwargs):
        raise redis.ConnectionError("down")


@pytest.fixture
def manager():
    return LockManager(FakeRedis())


def test_acquire(manager):
    lock = manager.acquire_lock("test-key-1", 5)
    assert lock.key == "lock:test-key-1"
    lock.release()


def test_same_key_cannot_be_acquired(manager):
    lock1 = manager.acquire_lock("test-key-2", 5)
    with pytest.raises(LockNotAcquiredError):
        manager.acquire_lock("test-key-2", 5)
    lock1.release()


def test_reacquire_after_release(manager):
    manager.acquire_lock("test-key-3", 5).release()
    lock2 = manager.acquire_lock("test-key-3", 5)
    assert lock2.key == "lock:test-key-3"


def test_retry_acquires(manager):
    lock1 = manager.acquire_lock("test-key-4", 0.5)

    def release_later():
        time.sleep(0.3)
        lock1.release()

    threading.Thread(target=release_later).start()
    lock2 = manager.acquire_lock_with_retry("test-key-4", 5, 5, 0.1)
    assert lock2.value != lock1.value


def test_retry_gives_up(manager):
    manager.acquire_lock("busy", 5)
    with pytest.raises(LockNotAcquiredError):
        manager.acquire_lock_with_retry("busy", 5, 2, 0.01)


def test_retry_cancelled(manager):
    manager.acquire_lock("busy", 5)
    cancel = threading.Event()
    cancel.set()
    with pytest.raises(LockError):
        manager.acquire_lock_with_retry("busy", 5, 3, 1, cancel)


def test_extend(manager):
    lock = manager.acquire_lock("test-key-extend", 1)
    lock.extend(5)
    assert lock.ttl == 5
    with pytest.raises(LockNotAcquiredError):
        manager.acquire_lock("test-key-extend", 1)


def test_cannot_extend_after_release(manager):
    lock = manager.acquire_lock("test-key-extend-after-release", 1)
    lock.release()
    with pytest.raises(LockNotOwnedError):
        lock.extend(5)


def test_cannot_release_twice(manager):
    lock = manager.acquire_lock("twice", 1)
    lock.release()
    with pytest.raises(LockNotOwnedError):
        lock.release()


def test_backend_error_is_wrapped():
    with pytest.raises(LockError) as info:
        LockManager(BrokenRedis()).acquire_lock("k", 1)
    assert not isinstance(info.value, LockNotAcquiredError)