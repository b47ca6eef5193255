"""Live-handle registry and per-schedule locks.

``HandleRegistry`` is the service's ``ScheduleID → ScheduledFunc`` map.
It is read by engine worker threads (sync hooks) and written by
administrative calls, so every access goes through one lock. Entries are
replaced wholesale and never mutated in place.

``KeyedLock`` serializes administrative mutations on the same schedule ID
while letting different IDs proceed in parallel.

Tags:
    cronspine, scheduling, concurrency, thread-safety, registry
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Generic, TypeVar

from cronspine.core.models.scheduler import ScheduledFunc, ScheduleID

K = TypeVar("K")


class HandleRegistry:
    """Thread-safe map of schedule IDs to live engine handles."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._handles: dict[ScheduleID, ScheduledFunc] = {}

    def get(self, schedule_id: ScheduleID) -> ScheduledFunc | None:
        with self._lock:
            return self._handles.get(schedule_id)

    def put(self, schedule_id: ScheduleID, handle: ScheduledFunc) -> None:
        with self._lock:
            self._handles[schedule_id] = handle

    def remove(self, schedule_id: ScheduleID) -> ScheduledFunc | None:
        with self._lock:
            return self._handles.pop(schedule_id, None)

    def clear(self) -> None:
        with self._lock:
            self._handles.clear()

    def snapshot(self) -> dict[ScheduleID, ScheduledFunc]:
        with self._lock:
            return dict(self._handles)

    def __contains__(self, schedule_id: object) -> bool:
        with self._lock:
            return schedule_id in self._handles

    def __len__(self) -> int:
        with self._lock:
            return len(self._handles)


class KeyedLock(Generic[K]):
    """One mutex per key, created on demand and dropped when unused.

    Example:
        >>> locks: KeyedLock[str] = KeyedLock()
        >>> with locks.hold("a"):
        ...     pass
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[K, threading.Lock] = {}
        self._waiters: dict[K, int] = {}

    @contextmanager
    def hold(self, key: K) -> Iterator[None]:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            self._waiters[key] = self._waiters.get(key, 0) + 1

        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                self._waiters[key] -= 1
                if self._waiters[key] == 0:
                    del self._waiters[key]
                    del self._locks[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


__all__ = ["HandleRegistry", "KeyedLock"]
