"""A thread object with an overridable ``run`` and start/join control."""

from __future__ import annotations

import threading
import time
from abc import ABC, abstractmethod

from .jptime import JPTime


class ThreadBase(ABC):
    """Base class for objects that run their work on their own thread.

    Subclasses implement :meth:`run`. A thread can be started only once.
    """

    def __init__(self) -> None:
        self._state_lock = threading.Lock()
        self._started = False
        self._running = False
        self._thread: threading.Thread | None = None
        self._thread_id = 0

    def start(self) -> bool:
        """Start the thread; raise RuntimeError if it was started before."""
        with self._state_lock:
            if self._started:
                raise RuntimeError("thread already started")
            thread = threading.Thread(target=self._thread_main, daemon=True)
            self._thread = thread
            self._started = True
            self._running = True
        thread.start()
        with self._state_lock:
            self._thread_id = thread.ident or 0
        return True

    def _thread_main(self) -> None:
        try:
            self.run()
        finally:
            with self._state_lock:
                self._running = False

    def join(self) -> None:
        """Wait for the thread to finish, then give up control of it."""
        thread = self._thread
        if thread is None:
            return
        thread.join()
        self.detach()

    def detach(self) -> None:
        """Give up control of the thread; it keeps running if still alive."""
        self._thread = None

    @staticmethod
    def sleep(timeout: JPTime) -> None:
        """Suspend the calling thread for ``timeout``."""
        time.sleep(max(timeout.to_milli_seconds(), 0) / 1000.0)

    @staticmethod
    def yield_thread() -> None:
        """Let another ready thread run."""
        time.sleep(0)

    @property
    def thread_id(self) -> int:
        with self._state_lock:
            return self._thread_id

    def is_alive(self) -> bool:
        with self._state_lock:
            return self._running

    @abstractmethod
    def run(self) -> None:
        """The work done on the thread."""