# src/taskhub/core/locks.py

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager


class KeyedLocks:
    """
    One exclusive lock per record id.

    Entries are reference-counted and dropped once nobody holds or waits on
    them, so the table does not grow with the number of ids ever touched.
    Locks are re-entrant: the completion path re-enters the same task id.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, tuple[threading.RLock, int]] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            lock, users = self._locks.get(key, (threading.RLock(), 0))
            self._locks[key] = (lock, users + 1)

        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                lock_, users = self._locks[key]
                if users <= 1:
                    del self._locks[key]
                else:
                    self._locks[key] = (lock_, users - 1)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
