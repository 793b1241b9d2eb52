"""A non-blocking TCP server driven by repeated heartbeats."""

from __future__ import annotations

import contextlib
import logging
import select
import socket
import threading
from collections import deque
from dataclasses import dataclass

from .data_row import DataRow
from .transport import TPObject, TransportError, TransportListener

logger = logging.getLogger(__name__)

_BACKLOG = 5


@dataclass(eq=False)
class _Client:
    conn_id: int
    socket: socket.socket
    ip: str
    port: int


class TCPServer(TPObject):
    """Accepts clients and serves them from :meth:`heartbeat`.

    Each heartbeat closes the clients marked for closing, accepts at most one
    new connection, reads from ready clients and writes queued data, with the
    results reported to the listener. Without a listener every incoming
    connection is refused.
    """

    def __init__(
        self,
        listener: TransportListener | None,
        mutex=None,
        engine_id: int = 0,
    ) -> None:
        super().__init__(listener, mutex, engine_id)
        self._socket: socket.socket | None = None
        self._max_queue_length = 0
        self._clients: dict[int, _Client] = {}
        self._queues: dict[socket.socket, deque[DataRow]] = {}
        self._pending_close: deque[int] = deque()
        self._pending_lock = threading.Lock()

    @property
    def listening(self) -> bool:
        return self._socket is not None

    @property
    def connection_ids(self) -> list[int]:
        """Ids of the connected clients, in the order they were accepted."""
        return list(self._clients)

    def queue_length(self, conn_id: int) -> int:
        """Number of rows waiting to be sent to a client."""
        client = self._clients.get(conn_id)
        if client is None:
            return 0
        return len(self._queues.get(client.socket, ()))

    def listen(self, ip: str | None, port: int) -> int:
        """Bind and listen on ``ip`` (any address when None); return the bound port."""
        with self._mutex:
            if self._socket is None:
                self._socket = socket.socket(
                    socket.AF_INET, socket.SOCK_STREAM, socket.IPPROTO_TCP
                )
            sock = self._socket
            try:
                sock.setblocking(False)
            except OSError as exc:
                raise TransportError("cannot make the socket non-blocking") from exc
            try:
                sock.bind(("" if ip is None else ip, port))
                sock.listen(_BACKLOG)
            except OSError as exc:
                self._close_inside()
                raise TransportError(f"cannot listen on {ip}:{port}") from exc
            with contextlib.suppress(OSError):
                if self._recv_buff_size > 0:
                    sock.setsockopt(socket.SOL_SOCKET, socket.SO_RCVBUF, self._recv_buff_size)
                if self._send_buffer_size > 0:
                    sock.setsockopt(socket.SOL_SOCKET, socket.SO_SNDBUF, self._send_buffer_size)
            return sock.getsockname()[1]

    def close_client(self, conn_id: int) -> None:
        """Mark a client for closing; it is closed at the next heartbeat."""
        with self._pending_lock:
            self._pending_close.append(conn_id)

    def _deal_pending_closes(self) -> int:
        with self._pending_lock:
            if not self._pending_close:
                return 0
            ids = list(self._pending_close)
            self._pending_close.clear()
        for conn_id in ids:
            self._close_pending_client(conn_id)
        return len(ids)

    def _close_pending_client(self, conn_id: int) -> None:
        with self._mutex:
            client = self._clients.pop(conn_id, None)
            if client is None:
                return
            client.socket.close()
            queue = self._queues.pop(client.socket, None)
            if queue is not None:
                self._drop(queue)

    def heartbeat(self) -> None:
        """Run one round of accepting, reading and writing."""
        with self._mutex:
            listener_sock = self._socket
            if listener_sock is None:
                raise TransportError("not listening")

            self._deal_pending_closes()

            rlist = [listener_sock, *(c.socket for c in self._clients.values())]
            wlist = [s for s, q in self._queues.items() if q]
            try:
                readable, writable, _ = select.select(
                    rlist, wlist, [], self._select_seconds()
                )
            except (OSError, ValueError) as exc:
                raise TransportError("select failed") from exc
            readable_set = set(readable)
            writable_set = set(writable)

            if listener_sock in readable_set:
                self._accept(listener_sock)

            closed: set[socket.socket] = set()
            for client in list(self._clients.values()):
                if client.socket not in readable_set:
                    continue
                data = self._receive(client.socket)
                if data is None:
                    closed.add(client.socket)
                    if self._listener is not None:
                        self._listener.on_close(self._engine_id, client.conn_id)
                    self.close_client(client.conn_id)
                    break
                if self._listener is not None:
                    self._listener.on_data(self._engine_id, client.conn_id, data)

            if writable_set:
                self._flush(writable_set, closed)

    def _accept(self, listener_sock: socket.socket) -> None:
        try:
            sock, (ip, port) = listener_sock.accept()
        except OSError:
            logger.warning("invalid accepted socket")
            return
        conn_id = self._new_connect_id()
        ret = 1
        if self._listener is not None:
            ret = self._listener.on_connect(self._engine_id, conn_id, ip, port)
        if ret != 0:
            sock.close()
            return
        self._clients[conn_id] = _Client(conn_id, sock, ip, port)
        self._apply_socket_options(sock)
        try:
            sock.setblocking(False)
        except OSError:
            logger.warning("cannot make the accepted socket non-blocking")

    def _flush(self, writable: set[socket.socket], closed: set[socket.socket]) -> None:
        listener = self._listener
        for queue in list(self._queues.values()):
            for _ in range(len(queue)):
                if not queue:
                    break
                row = queue[0]
                # Data for a connection that just closed is left for the close to drop.
                if row.socket in closed or row.socket not in writable:
                    break
                sent = self._send_inside(row.conn_id, row.data)
                if sent < 0:
                    # The connection is probably gone; the next heartbeat sees it.
                    break
                if sent < row.length:
                    row.part_data_sent = 1
                    ret = (
                        listener.on_send_data_ack(
                            self._engine_id, row.conn_id, row.sequence, sent
                        )
                        if listener is not None
                        else 0
                    )
                    if ret == 0:
                        row.data = row.data[sent:]
                    elif ret == 1:
                        self._drop(queue)
                    break
                if listener is not None:
                    listener.on_send_data_ack(self._engine_id, row.conn_id, row.sequence, 0)
                if queue and queue[0] is row:
                    queue.popleft()
                    row.recycle()

    def send(self, conn_id: int, send_id: int, data: bytes) -> None:
        """Queue ``data`` for a client; ``send_id`` comes back in the ack."""
        with self._mutex:
            client = self._clients.get(conn_id)
            if client is None:
                raise TransportError(f"bad connection: {conn_id}")
            queue = self._queues.get(client.socket)
            if queue is None:
                queue = self._queues[client.socket] = deque()
            elif 0 < self._max_queue_length <= len(queue):
                raise TransportError("send queue is full")
            row = self._create_data_row()
            row.part_data_sent = 0
            row.conn_id = conn_id
            row.data = bytes(data)
            row.socket = client.socket
            row.sequence = send_id
            queue.append(row)

    def _send_inside(self, conn_id: int, data: bytes) -> int:
        client = self._clients.get(conn_id)
        if client is None:
            logger.warning("socket invalid")
            return -1
        if not data:
            return 0
        try:
            return client.socket.send(data)
        except OSError:
            return -1

    def close(self) -> None:
        """Close every client and the listening socket and drop all queued data."""
        with self._mutex:
            self._close_inside()
            for queue in self._queues.values():
                self._drop(queue)
            self._queues.clear()

    def _close_inside(self) -> None:
        for client in self._clients.values():
            client.socket.close()
        self._clients.clear()
        if self._socket is not None:
            self._socket.close()
            self._socket = None

    @staticmethod
    def _drop(queue: deque[DataRow]) -> None:
        while queue:
            queue.popleft().recycle()

    def set_max_data_queue_length(self, length: int) -> None:
        """Limit each client's send queue; 0 means no limit."""
        self._max_queue_length = length