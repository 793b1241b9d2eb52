"""A non-blocking TCP client driven by repeated heartbeats."""

from __future__ import annotations

import errno
import logging
import select
import socket
from collections import deque

from .data_row import DataRow
from .transport import TPObject, TransportError, TransportListener

logger = logging.getLogger(__name__)

_IN_PROGRESS = {
    errno.EINPROGRESS,
    errno.EWOULDBLOCK,
    errno.EAGAIN,
    errno.EALREADY,
    10035,  # WSAEWOULDBLOCK
}


class TCPClient(TPObject):
    """Connects to one server; queued data is written and received data read
    by :meth:`heartbeat`, with results reported to the listener."""

    def __init__(
        self,
        listener: TransportListener | None,
        mutex=None,
        engine_id: int = 0,
    ) -> None:
        super().__init__(listener, mutex, engine_id)
        self._socket: socket.socket | None = None
        self._max_queue_length = 0
        self._queue: deque[DataRow] = deque()

    @property
    def connected(self) -> bool:
        return self._socket is not None

    @property
    def queue_length(self) -> int:
        return len(self._queue)

    def connect(self, ip: str, port: int) -> None:
        """Connect, waiting at most the select timeout; raise TransportError on failure."""
        with self._mutex:
            if self._socket is None:
                self._socket = socket.socket(socket.AF_INET, socket.SOCK_STREAM, socket.IPPROTO_TCP)
            sock = self._socket
            try:
                sock.setblocking(False)
            except OSError as exc:
                raise TransportError("cannot make the socket non-blocking") from exc
            self._apply_socket_options(sock)

            try:
                err = sock.connect_ex((ip, port))
            except OSError as exc:
                self._close_inside()
                raise TransportError(f"cannot connect to {ip}:{port}") from exc
            if err == 0:
                return
            if err in _IN_PROGRESS:
                try:
                    _, writable, _ = select.select([], [sock], [], self._select_seconds())
                except (OSError, ValueError):
                    writable = []
                if writable and sock.getsockopt(socket.SOL_SOCKET, socket.SO_ERROR) == 0:
                    return
            self._close_inside()
            raise TransportError(f"cannot connect to {ip}:{port}")

    def send(self, send_id: int, data: bytes) -> None:
        """Queue ``data`` for sending; ``send_id`` comes back in the ack."""
        with self._mutex:
            if 0 < self._max_queue_length <= len(self._queue):
                raise TransportError("send queue is full")
            row = self._create_data_row()
            row.part_data_sent = 0
            row.conn_id = 0
            row.data = bytes(data)
            row.socket = self._socket
            row.sequence = send_id
            self._queue.append(row)

    def heartbeat(self) -> None:
        """Read what arrived and write what is queued, waiting at most the select timeout."""
        with self._mutex:
            sock = self._socket
            if sock is None:
                raise TransportError("not connected")
            wlist = [sock] if self._queue else []
            try:
                readable, writable, _ = select.select([sock], wlist, [], self._select_seconds())
            except (OSError, ValueError) as exc:
                raise TransportError("select failed") from exc

            if readable:
                data = self._receive(sock)
                if data is None:
                    if self._listener is not None:
                        self._listener.on_close(self._engine_id, 0)
                    self._close_inside()
                    return
                if self._listener is not None:
                    self._listener.on_data(self._engine_id, 0, data)

            if writable and self._socket is sock:
                self._flush()

    def _flush(self) -> None:
        listener = self._listener
        for _ in range(len(self._queue)):
            if not self._queue:
                break
            row = self._queue[0]
            sent = self._send_inside(row.data)
            if sent < 0:
                # The connection is probably gone; the next heartbeat sees it.
                break
            if sent < row.length:
                ret = (
                    listener.on_send_data_ack(self._engine_id, row.conn_id, row.sequence, sent)
                    if listener is not None
                    else 0
                )
                if ret == 0:
                    row.data = row.data[sent:]
                elif ret == 1:
                    self._drop_queue()
                break
            if listener is not None:
                listener.on_send_data_ack(self._engine_id, row.conn_id, row.sequence, 0)
            if self._queue and self._queue[0] is row:
                self._queue.popleft()
                row.recycle()

    def _send_inside(self, data: bytes) -> int:
        if self._socket is None:
            logger.warning("socket invalid")
            return -1
        if not data:
            return 0
        try:
            return self._socket.send(data)
        except OSError:
            return -1

    def close(self) -> None:
        """Close the connection and drop everything queued."""
        with self._mutex:
            self._close_inside()

    def _close_inside(self) -> None:
        with self._mutex:
            if self._socket is not None:
                self._socket.close()
                self._socket = None
            self._drop_queue()

    def _drop_queue(self) -> None:
        while self._queue:
            self._queue.popleft().recycle()

    def set_max_data_queue_length(self, length: int) -> None:
        """Limit the send queue; 0 means no limit."""
        self._max_queue_length = length