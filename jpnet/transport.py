"""Common state and settings of the TCP transport objects."""

from __future__ import annotations

import contextlib
import itertools
import logging
import socket
import threading
from abc import ABC, abstractmethod
from enum import IntEnum
from typing import Any, Callable

from .data_row import DataRow, DataRowPool

logger = logging.getLogger(__name__)

RECV_BUFFER_SIZE = 64 * 1024
DEFAULT_SOCKET_BUFFER_SIZE = 64 * 1024
MAX_TP_RECV_BUFFER_SIZE = 1024 * 1024


class TPType(IntEnum):
    SEND = 0
    RECEIVE = 1


class TransportError(Exception):
    """A transport operation failed."""


class TransportListener:
    """Receives the events of a transport object.

    ``on_connect`` returns 0 to accept a connection and 1 to refuse it.
    ``on_send_data_ack`` reports ``sent`` bytes of a row that went out only in
    part (0 when the row went out whole); it returns 0 to keep sending the
    rest and 1 to drop everything queued.

    The events can be handled by overriding the methods or by passing
    callables to the constructor; without either, connections are accepted,
    partial sends continue and the other events are logged.
    """

    _connect_cb: Callable[[int, int, str, int], int] | None = None
    _data_cb: Callable[[int, int, bytes], Any] | None = None
    _close_cb: Callable[[int, int], Any] | None = None
    _ack_cb: Callable[[int, int, int, int], int] | None = None

    def __init__(
        self,
        on_connect: Callable[[int, int, str, int], int] | None = None,
        on_data: Callable[[int, int, bytes], Any] | None = None,
        on_close: Callable[[int, int], Any] | None = None,
        on_send_data_ack: Callable[[int, int, int, int], int] | None = None,
    ) -> None:
        self._connect_cb = on_connect
        self._data_cb = on_data
        self._close_cb = on_close
        self._ack_cb = on_send_data_ack

    def on_connect(self, engine_id: int, conn_id: int, ip: str, port: int) -> int:
        if self._connect_cb is not None:
            return self._connect_cb(engine_id, conn_id, ip, port)
        logger.debug("engine %d: connection %d from %s:%d", engine_id, conn_id, ip, port)
        return 0

    def on_data(self, engine_id: int, conn_id: int, data: bytes) -> None:
        """Called with each chunk of received data."""
        if self._data_cb is not None:
            self._data_cb(engine_id, conn_id, data)
            return
        logger.debug("engine %d: %d bytes on connection %d", engine_id, len(data), conn_id)

    def on_close(self, engine_id: int, conn_id: int) -> None:
        """Called when the peer closed the connection or it failed."""
        if self._close_cb is not None:
            self._close_cb(engine_id, conn_id)
            return
        logger.debug("engine %d: connection %d closed", engine_id, conn_id)

    def on_send_data_ack(self, engine_id: int, conn_id: int, sequence: int, sent: int) -> int:
        if self._ack_cb is not None:
            return self._ack_cb(engine_id, conn_id, sequence, sent)
        logger.debug(
            "engine %d: row %d on connection %d acknowledged (%d)", engine_id, sequence, conn_id, sent
        )
        return 0


class TPObject(ABC):
    """Settings, buffers and helpers shared by the TCP client and server.

    ``mutex`` is any reentrant context manager guarding the object; without
    one no locking is done. ``engine_id`` tells apart several transport
    objects reporting to one listener.
    """

    def __init__(
        self,
        listener: TransportListener | None,
        mutex=None,
        engine_id: int = 0,
    ) -> None:
        self._listener = listener
        self._mutex = mutex if mutex is not None else contextlib.nullcontext()
        self._engine_id = engine_id
        self._buffer: memoryview = memoryview(bytearray(RECV_BUFFER_SIZE))
        self._recv_buff_size = DEFAULT_SOCKET_BUFFER_SIZE
        self._send_buffer_size = DEFAULT_SOCKET_BUFFER_SIZE
        self._timeout = (0, 1)
        self._nodelay = 0
        self._ids = itertools.count(1)
        self._ids_lock = threading.Lock()
        self._data_row_pool = DataRowPool()

    @property
    def listener(self) -> TransportListener | None:
        return self._listener

    @property
    def engine_id(self) -> int:
        return self._engine_id

    @property
    def select_timeout(self) -> tuple[int, int]:
        """The select timeout as ``(seconds, microseconds)``."""
        return self._timeout

    @property
    def tp_recv_buffer_size(self) -> int:
        return len(self._buffer)

    @property
    def nodelay(self) -> int:
        return self._nodelay

    def set_listener(self, listener: TransportListener) -> None:
        if listener is None:
            raise ValueError("listener must not be None")
        self._listener = listener

    def set_socket_buffer_size(self, tp_type: TPType, size: int) -> None:
        """Set the kernel send or receive buffer size used for new sockets."""
        with self._mutex:
            if size < 0:
                raise ValueError(f"buffer size must not be negative: {size}")
            if tp_type == TPType.SEND:
                self._send_buffer_size = size
            elif tp_type == TPType.RECEIVE:
                self._recv_buff_size = size
            else:
                raise ValueError(f"unknown buffer type: {tp_type!r}")

    def get_socket_buffer_size(self, tp_type: TPType) -> int:
        if tp_type == TPType.SEND:
            return self._send_buffer_size
        if tp_type == TPType.RECEIVE:
            return self._recv_buff_size
        raise ValueError(f"unknown buffer type: {tp_type!r}")

    def set_select_timeout(self, sec: int, usec: int) -> None:
        """Set how long one select waits; zero means polling."""
        with self._mutex:
            if sec < 0 or usec < 0:
                raise ValueError("timeout must not be negative")
            self._timeout = (sec, usec)

    def set_tp_recv_buff_size(self, size: int) -> None:
        """Replace the receive buffer with an own one of ``size`` bytes."""
        with self._mutex:
            if not 0 < size < MAX_TP_RECV_BUFFER_SIZE:
                raise ValueError(f"receive buffer size out of range: {size}")
            self._buffer = memoryview(bytearray(size))

    def set_tp_recv_buffer(self, buff) -> None:
        """Receive straight into the caller's writable buffer."""
        with self._mutex:
            view = memoryview(buff)
            if view.readonly:
                raise ValueError("receive buffer must be writable")
            if view.nbytes == 0:
                raise ValueError("receive buffer must not be empty")
            self._buffer = view.cast("B")

    def set_nodelay_flag(self, flag: int) -> None:
        """1 turns Nagle's algorithm off on new sockets, 0 leaves it on."""
        with self._mutex:
            self._nodelay = flag

    @abstractmethod
    def heartbeat(self) -> None:
        """Run one round of socket work."""

    def _select_seconds(self) -> float:
        sec, usec = self._timeout
        return sec + usec / 1_000_000

    def _new_connect_id(self) -> int:
        with self._ids_lock:
            return next(self._ids)

    def _create_data_row(self) -> DataRow:
        return self._data_row_pool.create_data_row()

    def _apply_socket_options(self, sock: socket.socket) -> None:
        if self._nodelay == 1:
            try:
                sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
            except OSError:
                logger.warning("cannot set TCP_NODELAY")
        with contextlib.suppress(OSError):
            if self._recv_buff_size > 0:
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_RCVBUF, self._recv_buff_size)
            if self._send_buffer_size > 0:
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_SNDBUF, self._send_buffer_size)

    def _receive(self, sock: socket.socket) -> bytes | None:
        """Read one chunk; None when the peer closed or the read failed."""
        try:
            count = sock.recv_into(self._buffer, len(self._buffer))
        except OSError as exc:
            logger.info("peer closed or network error: %s", exc)
            return None
        if count <= 0:
            return None
        return bytes(self._buffer[:count])