import threading
from contextlib import contextmanager

from flask import current_app

from BrokerageLedger.errors import ConcurrentModification


class RowLockRegistry:
    """
    In-process mutual exclusion keyed by row identity, e.g. ("position", 7, "SBER").

    Writers on the same key run one at a time; writers on different keys never
    wait on each other. Entries are dropped once nobody holds or waits on them.
    Used alongside SELECT ... FOR UPDATE so dialects without row locks (SQLite)
    still serialise read-modify-write cycles on one row.
    """

    def __init__(self, timeout: float = 10.0):
        self.timeout = timeout
        self._guard = threading.Lock()
        self._entries = {}  # key -> [lock, holders]

    @contextmanager
    def hold(self, key, timeout: float = None):
        timeout = self.timeout if timeout is None else timeout
        with self._guard:
            entry = self._entries.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        acquired = False
        try:
            acquired = entry[0].acquire(timeout=timeout)
            if not acquired:
                raise ConcurrentModification(f"Timed out after {timeout}s waiting for lock on {key}")
            yield
        finally:
            if acquired:
                entry[0].release()
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._entries[key]

    def __len__(self):
        with self._guard:
            return len(self._entries)


def row_locks() -> RowLockRegistry:
    """The registry of the current Flask app."""
    return current_app.extensions["row_locks"]
