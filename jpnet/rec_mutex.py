"""A recursive mutex that can hand its whole hold over to a condition."""

from __future__ import annotations

import threading


class RecursiveMutex:
    """A mutex the owning thread may lock several times.

    It is released for other threads once unlocked as often as it was locked.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._owner: int | None = None
        self._count = 0

    def lock(self) -> None:
        me = threading.get_ident()
        if self._owner == me:
            self._count += 1
            return
        self._lock.acquire()
        self._owner = me
        self._count = 1

    def try_lock(self) -> bool:
        """Lock without blocking; True if held by the calling thread afterwards."""
        me = threading.get_ident()
        if self._owner == me:
            self._count += 1
            return True
        if not self._lock.acquire(blocking=False):
            return False
        self._owner = me
        self._count = 1
        return True

    def unlock(self) -> None:
        if not self._is_owned():
            raise RuntimeError("mutex is not held by the calling thread")
        self._count -= 1
        if self._count == 0:
            self._owner = None
            self._lock.release()

    def will_unlock(self) -> bool:
        """True if the next unlock releases the mutex to other threads."""
        return self._count == 1

    def _is_owned(self) -> bool:
        return self._owner == threading.get_ident() and self._count > 0

    def _release_all(self) -> int:
        """Release every level of the hold and return the depth."""
        if not self._is_owned():
            raise RuntimeError("mutex is not held by the calling thread")
        depth = self._count
        self._count = 0
        self._owner = None
        self._lock.release()
        return depth

    def _restore(self, depth: int) -> None:
        """Reacquire the mutex with the given hold depth."""
        self._lock.acquire()
        self._owner = threading.get_ident()
        self._count = depth

    def __enter__(self) -> RecursiveMutex:
        self.lock()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.unlock()