"""Send-queue entries and a pool that recycles them."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field

from .rec_mutex import RecursiveMutex


@dataclass(eq=False)
class DataRow:
    """One piece of outgoing data and its bookkeeping.

    ``part_data_sent`` is 0 when the data went out whole, 1 when only part of
    it did. ``conn_id`` is 0 on the client side.
    """

    data: bytes = b""
    sequence: int = 0
    part_data_sent: int = 0
    conn_id: int = 0
    socket: object = None
    pool: DataRowPool | None = field(default=None, repr=False)

    @property
    def length(self) -> int:
        return len(self.data)

    def recycle(self) -> None:
        """Return the row to its pool, if it still has one."""
        if self.pool is not None:
            self.part_data_sent = 0
            self.pool._recycle(self)


class DataRowPool:
    """A thread-safe first-in first-out pool of reusable rows."""

    def __init__(self) -> None:
        self._rows: deque[DataRow] = deque()
        self._mutex = RecursiveMutex()

    def create_data_row(self) -> DataRow:
        with self._mutex:
            if self._rows:
                return self._rows.popleft()
            return DataRow(pool=self)

    def _recycle(self, row: DataRow) -> None:
        with self._mutex:
            self._rows.append(row)

    def close(self) -> None:
        """Detach every pooled row from the pool and empty it."""
        with self._mutex:
            for row in self._rows:
                row.pool = None
            self._rows.clear()