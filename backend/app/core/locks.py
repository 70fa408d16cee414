"""In-process locks keyed by invoice ID.

Mutations read line items, compute and write totals; two of them running at
once against the same invoice would lose an update. Callers hold the lock of
every invoice they touch for the duration of the operation.

The locks are thread locks. They only serialize callers running on different
threads, such as sync FastAPI routes served from the threadpool.
"""

from collections.abc import Hashable, Iterator
from contextlib import contextmanager
from threading import Lock, RLock
from typing import Any


class KeyedLock:
    def __init__(self) -> None:
        self._guard = Lock()
        self._locks: dict[Hashable, Any] = {}
        self._holders: dict[Hashable, int] = {}

    def _acquire_entry(self, key: Hashable) -> Any:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = RLock()
                self._locks[key] = lock
            self._holders[key] = self._holders.get(key, 0) + 1
            return lock

    def _release_entry(self, key: Hashable) -> None:
        with self._guard:
            remaining = self._holders[key] - 1
            if remaining:
                self._holders[key] = remaining
            else:
                del self._holders[key]
                del self._locks[key]

    @contextmanager
    def hold(self, *keys: Hashable) -> Iterator[None]:
        """Hold the locks of all keys; acquired in sorted order to avoid deadlock."""
        ordered = sorted(set(keys), key=str)
        acquired: list[Hashable] = []
        try:
            for key in ordered:
                lock = self._acquire_entry(key)
                lock.acquire()
                acquired.append(key)
            yield
        finally:
            for key in reversed(acquired):
                self._locks[key].release()
                self._release_entry(key)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


invoice_locks = KeyedLock()
