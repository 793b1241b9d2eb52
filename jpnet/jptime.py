"""Millisecond-resolution points in time and durations."""

from __future__ import annotations

import time
from dataclasses import dataclass


def _trunc_div(value: int, divisor: int) -> int:
    """Integer division that truncates toward zero."""
    quotient = abs(value) // divisor
    return -quotient if value < 0 else quotient


def _trunc_mod(value: int, divisor: int) -> int:
    """Remainder whose sign follows the dividend."""
    return value - _trunc_div(value, divisor) * divisor


@dataclass(frozen=True, order=True)
class JPTime:
    """A time value held as a whole number of milliseconds.

    It serves both as an absolute point (milliseconds since the epoch) and
    as a duration, and supports addition, subtraction and ordering.
    """

    msec: int = 0

    @classmethod
    def now(cls) -> JPTime:
        """The current wall-clock time."""
        return cls(time.time_ns() // 1_000_000)

    @classmethod
    def make_time(
        cls,
        year: int,
        month: int,
        day: int,
        hour: int,
        minute: int,
        second: int,
        milli_second: int,
    ) -> JPTime:
        """Build a point in time from local calendar fields."""
        elapsed = time.mktime((year, month, day, hour, minute, second, 0, 0, -1))
        return cls(int(elapsed) * 1000 + milli_second)

    @classmethod
    def seconds(cls, t: int) -> JPTime:
        return cls(int(t) * 1000)

    @classmethod
    def milli_seconds(cls, t: int) -> JPTime:
        return cls(int(t))

    def to_seconds(self) -> int:
        return _trunc_div(self.msec, 1000)

    def to_milli_seconds(self) -> int:
        return self.msec

    def to_date_time(self) -> str:
        """Local time as ``YYYY-MM-DD HH:MM:SS``."""
        return time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(self.to_seconds()))

    def to_date_time_accuracy(self) -> str:
        """Local time as ``YYYY-MM-DD HH:MM:SS.mmm``."""
        return f"{self.to_date_time()}.{_trunc_mod(self.msec, 1000):03d}"

    def __add__(self, other: JPTime) -> JPTime:
        if not isinstance(other, JPTime):
            return NotImplemented
        return JPTime(self.msec + other.msec)

    def __sub__(self, other: JPTime) -> JPTime:
        if not isinstance(other, JPTime):
            return NotImplemented
        return JPTime(self.msec - other.msec)