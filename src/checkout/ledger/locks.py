"""Per-key lock registry used to serialize ledger writes.

Two callers touching the same Stock Unit must not interleave between reading
its holds and committing a new one. Each unit id (and each order id for
payment callbacks) maps to one ``threading.Lock``; multi-key acquisitions
always go in sorted order so overlapping batches cannot deadlock.
"""

import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager


class LockRegistry:
    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def _lock_for(self, key: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    @contextmanager
    def hold(self, keys: Iterable) -> Iterator[list[str]]:
        """Acquire the locks for ``keys`` in sorted order; yields the sorted keys."""
        ordered = sorted({str(k) for k in keys})
        acquired: list[threading.Lock] = []
        try:
            for key in ordered:
                lock = self._lock_for(key)
                lock.acquire()
                acquired.append(lock)
            yield ordered
        finally:
            for lock in reversed(acquired):
                lock.release()

    def clear(self) -> None:
        with self._guard:
            self._locks.clear()


unit_locks = LockRegistry()
order_locks = LockRegistry()
