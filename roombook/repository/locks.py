"""Per-room mutual exclusion for check-then-insert booking writes."""

from __future__ import annotations

from contextlib import contextmanager
from threading import Lock
from typing import Iterator


class RoomLockRegistry:
    """Hands out one lock per room id.

    The registry lock is held only while looking up or creating a room's lock,
    never while that room lock is held, so different rooms do not contend.
    """

    def __init__(self) -> None:
        self._registry_lock = Lock()
        self._locks: dict[str, Lock] = {}

    def _lock_for(self, room_id: str) -> Lock:
        with self._registry_lock:
            lock = self._locks.get(room_id)
            if lock is None:
                lock = Lock()
                self._locks[room_id] = lock
            return lock

    @contextmanager
    def hold(self, room_id: str) -> Iterator[None]:
        lock = self._lock_for(room_id)
        with lock:
            yield

    def is_held(self, room_id: str) -> bool:
        with self._registry_lock:
            lock = self._locks.get(room_id)
        return lock is not None and lock.locked()
