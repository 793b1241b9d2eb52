"""A worker thread that runs queued tasks and drives timers."""

from __future__ import annotations

import logging
import threading
from collections import deque
from typing import Any, Callable

from .jptime import JPTime
from .thread_base import ThreadBase

logger = logging.getLogger(__name__)


class Timer:
    """A timer driven by a :class:`TaskTimerThread`.

    It first fires after ``delay`` (``interval`` when not given), then every
    ``interval`` while ``loop`` is true; a one-shot timer terminates itself.
    """

    def __init__(
        self,
        interval: JPTime,
        callback: Callable[[], Any] | None = None,
        *,
        delay: JPTime | None = None,
        loop: bool = True,
    ) -> None:
        self.interval = interval
        self.delay = interval if delay is None else delay
        self.loop = loop
        self.elapse = JPTime()
        self.delayed = False
        self.terminated = False
        self._callback = callback

    def on_timeout(self) -> None:
        """Called when the timer fires."""
        if self._callback is not None:
            self._callback()

    def terminate(self) -> None:
        self.terminated = True

    def resume(self) -> None:
        """Restart counting toward the next firing."""
        self.elapse = JPTime()


class TaskTimerThread(ThreadBase):
    """Runs tasks from a bounded queue and fires its timers between them.

    A task that is callable is called; any other task is handed to
    :meth:`process`. Errors raised by tasks and timers are logged and do not
    stop the thread. ``before`` and ``after`` are optional callables run at
    the start of each loop iteration and after its task.
    """

    def __init__(
        self,
        name: str = "Thread",
        max_len: int = 1024,
        *,
        before: Callable[[], Any] | None = None,
        after: Callable[[], Any] | None = None,
    ) -> None:
        super().__init__()
        self.name = name
        self._max_len = max_len
        self._terminated = False
        self._timeout = JPTime.milli_seconds(10)
        self._now = JPTime()
        self._timestamp = JPTime()
        self._monitor = threading.Condition()
        self._tasks: deque[Any] = deque()
        self._timers: list[Timer] = []
        self._new_lock = threading.Lock()
        self._del_lock = threading.Lock()
        self._new_timers: list[Timer] = []
        self._del_timers: list[Timer] = []
        self._exit_task: Any = None
        self._before = before
        self._after = after

    def terminate(self) -> None:
        self._terminated = True
        with self._monitor:
            self._monitor.notify()

    def add_task(self, task: Any) -> int:
        """Queue a task; return the queue length (unchanged when full)."""
        with self._monitor:
            size = len(self._tasks)
            if size >= self._max_len:
                return size
            if not self._tasks:
                self._monitor.notify()
            self._tasks.append(task)
            return len(self._tasks)

    def set_exit_task(self, task: Any) -> None:
        """Set a task run once when the thread leaves its loop."""
        self._exit_task = task

    def task_count(self) -> int:
        with self._monitor:
            return len(self._tasks)

    def create_timer(self, timer: Timer) -> None:
        with self._new_lock:
            self._new_timers.append(timer)

    def destroy_timer(self, timer: Timer) -> None:
        with self._del_lock:
            self._del_timers.append(timer)

    def process(self, task: Any) -> bool:
        """Handle a task that is not callable; returns whether it was handled.

        By default a task with a callable ``dotask`` attribute is run through
        it; anything else is left unhandled.
        """
        dotask = getattr(task, "dotask", None)
        if callable(dotask):
            dotask()
            return True
        logger.debug("unhandled task in %s: %r", self.name, task)
        return False

    def before_process_task(self) -> None:
        """Hook called at the start of every loop iteration."""
        if self._before is not None:
            self._before()

    def after_process_task(self) -> None:
        """Hook called after the task of every loop iteration."""
        if self._after is not None:
            self._after()

    def run(self) -> None:
        self._now = JPTime.now()
        self._timestamp = self._now

        while not self._terminated:
            self.before_process_task()

            task = None
            with self._monitor:
                if not self._tasks:
                    self._monitor.wait(self._timeout.to_milli_seconds() / 1000.0)
                self._now = JPTime.now()
                if self._tasks:
                    task = self._tasks.popleft()

            if self._terminated:
                break

            if task is not None:
                self._execute(task)

            self.after_process_task()

            try:
                self._process_timers()
            except Exception:
                logger.exception("timer processing failed in %s", self.name)

        exit_task, self._exit_task = self._exit_task, None
        if exit_task is not None:
            self._execute(exit_task)

    def _execute(self, task: Any) -> None:
        try:
            if callable(task):
                task()
            else:
                self.process(task)
        except Exception:
            logger.exception("task failed in %s", self.name)

    def _process_timers(self) -> bool:
        if self._now <= self._timestamp:
            self._timestamp = self._now
            return False

        with self._new_lock:
            self._timers.extend(t for t in self._new_timers if t is not None)
            self._new_timers.clear()

        with self._del_lock:
            if self._del_timers:
                doomed = self._del_timers
                self._timers = [t for t in self._timers if all(t is not d for d in doomed)]
                self._del_timers = []

        self._now = JPTime.now()
        step = self._now - self._timestamp
        for timer in self._timers:
            if timer.terminated:
                self.destroy_timer(timer)
                continue
            timer.elapse = timer.elapse + step
            due = timer.interval if timer.delayed else timer.delay
            if timer.elapse >= due:
                timer.on_timeout()
                timer.delayed = True
                if timer.loop:
                    timer.resume()
                else:
                    timer.terminate()
        self._timestamp = self._now
        return True