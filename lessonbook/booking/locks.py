"""
Serialized sections keyed by resource.

Two requests that touch the same instructor or student run their
read-validate-write one after the other inside this process. Keys are taken
in sorted order so two requests sharing resources never wait on each other
in a cycle.

The locks live in this process only. Every request must reach the same
ResourceLocks (api.main caches one BookingService) and the app must run as
one worker process.
"""
import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from typing import Optional

from lessonbook.scheduling.types import Booking


def resource_keys(*bookings: Optional[Booking]) -> list[tuple]:
    """("instructor"|"student", school_id, id) for every resource the bookings claim."""
    keys = set()
    for b in bookings:
        if b is None:
            continue
        keys.add(("instructor", b.school_id, b.instructor_id))
        keys.add(("student", b.school_id, b.student_id))
    return sorted(keys)


class ResourceLocks:
    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[tuple, threading.Lock] = {}

    def _lock_for(self, key: tuple) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    @contextmanager
    def hold(self, keys: Iterable[tuple]) -> Iterator[None]:
        held = []
        try:
            for key in sorted(set(keys)):
                lock = self._lock_for(key)
                lock.acquire()
                held.append(lock)
            yield
        finally:
            for lock in reversed(held):
                lock.release()
