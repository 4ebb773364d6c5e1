"""Per-owner serialization for cart merge and checkout.

A guest-to-user merge must not interleave with a checkout of either cart.
Requests in one process serialize on a lock keyed by the cart owner; a
multi-process deployment needs the same keys on a shared lock.

Locks are reference counted and dropped once no request holds or waits
on them, so the table only ever holds the owners currently in flight.
"""

import threading
from contextlib import contextmanager

_registry_lock = threading.Lock()
# owner key -> [lock, number of holders and waiters]
_owner_locks: dict[str, list] = {}


def _checkout(key):
    with _registry_lock:
        entry = _owner_locks.get(key)
        if entry is None:
            entry = _owner_locks[key] = [threading.RLock(), 0]
        entry[1] += 1
        return entry[0]


def _checkin(key):
    with _registry_lock:
        entry = _owner_locks[key]
        entry[1] -= 1
        if entry[1] == 0:
            del _owner_locks[key]


def active_owner_keys() -> list[str]:
    with _registry_lock:
        return sorted(_owner_locks)


@contextmanager
def owner_lock(*owner_keys):
    """Hold the locks of every given owner key, acquired in sorted order."""
    keys = sorted({str(key) for key in owner_keys if key})
    held = []
    try:
        for key in keys:
            lock = _checkout(key)
            try:
                lock.acquire()
            except BaseException:
                _checkin(key)
                raise
            held.append((key, lock))
        yield
    finally:
        for key, lock in reversed(held):
            lock.release()
            _checkin(key)
