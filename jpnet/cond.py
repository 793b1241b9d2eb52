"""Condition variable that works with :class:`RecursiveMutex` and plain locks."""

from __future__ import annotations

import threading
from collections import deque

from .jptime import JPTime
from .rec_mutex import RecursiveMutex

_MAX_TIMEOUT_MS = 0x7FFFFFFF


class Cond:
    """A condition variable with POSIX semantics.

    ``signal`` wakes one waiting thread, ``broadcast`` wakes all; with no
    waiters either does nothing.
    """

    def __init__(self) -> None:
        self._internal = threading.Lock()
        self._waiters: deque[threading.Lock] = deque()

    def signal(self) -> None:
        with self._internal:
            if self._waiters:
                self._waiters.popleft().release()

    def broadcast(self) -> None:
        with self._internal:
            while self._waiters:
                self._waiters.popleft().release()

    def wait(self, lock) -> None:
        """Release ``lock``, wait for a signal, then reacquire ``lock``."""
        self._wait(lock, None)

    def timed_wait(self, lock, timeout: JPTime) -> bool:
        """Like :meth:`wait` but for at most ``timeout``.

        Returns True if signalled, False on timeout.
        """
        ms = timeout.to_milli_seconds()
        if ms < 0 or ms > _MAX_TIMEOUT_MS:
            raise ValueError(f"timeout out of range: {ms} ms")
        return self._wait(lock, ms / 1000.0)

    def _wait(self, lock, seconds: float | None) -> bool:
        release, restore = self._hand_over(lock)
        waiter = threading.Lock()
        waiter.acquire()
        with self._internal:
            self._waiters.append(waiter)
        state = release()
        try:
            if seconds is None:
                waiter.acquire()
                return True
            signalled = waiter.acquire(timeout=seconds)
            if not signalled:
                with self._internal:
                    try:
                        self._waiters.remove(waiter)
                    except ValueError:
                        # Signalled between the timeout and the removal.
                        signalled = True
            return signalled
        finally:
            restore(state)

    @staticmethod
    def _hand_over(lock):
        if isinstance(lock, RecursiveMutex):
            if not lock._is_owned():
                raise RuntimeError("lock must be held to wait on a condition")
            return lock._release_all, lock._restore
        locked = getattr(lock, "locked", None)
        if locked is None or not locked():
            raise RuntimeError("lock must be held to wait on a condition")

        def release():
            lock.release()
            return None

        def restore(_state):
            lock.acquire()

        return release, restore