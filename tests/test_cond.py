import threading
import time

import pytest

from jpnet.cond import Cond
from jpnet.jptime import JPTime
from jpnet.rec_mutex import RecursiveMutex


def test_timed_wait_times_out():
    cond = Cond()
    m = RecursiveMutex()
    with m:
        start = time.monotonic()
        assert cond.timed_wait(m, JPTime.milli_seconds(50)) is False
        assert time.monotonic() - start >= 0.04
        assert m.will_unlock() is True


def test_signal_wakes_waiter():
    cond = Cond()
    m = RecursiveMutex()
    ready = []
    results = []

    def waiter():
        with m:
            ready.append(True)
            results.append(cond.timed_wait(m, JPTime.seconds(5)))

    t = threading.Thread(target=waiter)
    t.start()
    while True:
        with m:
            if ready:
                cond.signal()
                break
        time.sleep(0.005)
    t.join(5)
    assert results == [True]
    with m:
        assert cond.timed_wait(m, JPTime.milli_seconds(1)) is False


def test_broadcast_wakes_all():
    cond = Cond()
    m = RecursiveMutex()
    waiting = []
    woken = []

    def waiter():
        with m:
            waiting.append(True)
            cond.wait(m)
            woken.append(True)

    threads = [threading.Thread(target=waiter) for _ in range(3)]
    for t in threads:
        t.start()
    while True:
        with m:
            if len(waiting) == 3:
                cond.broadcast()
                break
        time.sleep(0.005)
    for t in threads:
        t.join(5)
    assert len(woken) == 3
    with m:
        assert cond.timed_wait(m, JPTime.milli_seconds(1)) is False


def test_wait_restores_recursion_depth():
    cond = Cond()
    m = RecursiveMutex()
    with m:
        with m:
            assert cond.timed_wait(m, JPTime.milli_seconds(1)) is False
            assert m.will_unlock() is False
        assert m.will_unlock() is True


def test_wait_without_holding_lock_raises():
    with pytest.raises(RuntimeError):
        Cond().wait(RecursiveMutex())


def test_negative_timeout_rejected():
    m = RecursiveMutex()
    with m:
        with pytest.raises(ValueError):
            Cond().timed_wait(m, JPTime.milli_seconds(-1))


def test_plain_lock_supported():
    cond = Cond()
    lock = threading.Lock()
    with lock:
        assert cond.timed_wait(lock, JPTime.milli_seconds(1)) is False
        assert lock.locked() is True


def test_signal_without_waiters_is_harmless():
    cond = Cond()
    cond.signal()
    cond.broadcast()
    m = RecursiveMutex()
    with m:
        assert cond.timed_wait(m, JPTime.milli_seconds(1)) is False