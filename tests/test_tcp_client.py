import socket

import pytest

from jpnet.tcp_client import TCPClient
from jpnet.transport import TransportError, TransportListener


class Recorder(TransportListener):
    def __init__(self):
        self.data = []
        self.closed = []
        self.acks = []

    def on_data(self, engine_id, conn_id, data):
        self.data.append((engine_id, conn_id, data))

    def on_close(self, engine_id, conn_id):
        self.closed.append((engine_id, conn_id))

    def on_send_data_ack(self, engine_id, conn_id, sequence, sent):
        self.acks.append((engine_id, conn_id, sequence, sent))
        return 0

    @property
    def received(self):
        return b"".join(chunk for _, _, chunk in self.data)


def pump(client, predicate, rounds=100):
    for _ in range(rounds):
        if predicate():
            return True
        client.heartbeat()
    return predicate()


def recv_exact(conn, size):
    chunks = b""
    while len(chunks) < size:
        part = conn.recv(size - len(chunks))
        if not part:
            break
        chunks += part
    return chunks


@pytest.fixture
def server():
    srv = socket.create_server(("127.0.0.1", 0))
    srv.settimeout(5)
    yield srv
    srv.close()


@pytest.fixture
def pair(server):
    listener = Recorder()
    client = TCPClient(listener, engine_id=4)
    client.set_select_timeout(0, 200_000)
    client.connect("127.0.0.1", server.getsockname()[1])
    conn, _ = server.accept()
    conn.settimeout(5)
    yield client, conn, listener
    client.close()
    conn.close()


def test_send_delivers_and_acks(pair):
    client, conn, listener = pair
    client.send(5, b"hello")
    assert pump(client, lambda: listener.acks)
    assert listener.acks == [(4, 0, 5, 0)]
    assert recv_exact(conn, 5) == b"hello"
    assert client.queue_length == 0


def test_sends_keep_order(pair):
    client, conn, listener = pair
    client.send(1, b"ab")
    client.send(2, b"cd")
    assert pump(client, lambda: len(listener.acks) == 2)
    assert [ack[2] for ack in listener.acks] == [1, 2]
    assert recv_exact(conn, 4) == b"abcd"


def test_received_data_reported(pair):
    client, conn, listener = pair
    conn.sendall(b"ping")
    assert pump(client, lambda: len(listener.received) >= 4)
    assert listener.received == b"ping"
    assert all(engine == 4 and conn_id == 0 for engine, conn_id, _ in listener.data)


def test_small_receive_buffer_splits_data(pair):
    client, conn, listener = pair
    client.set_tp_recv_buff_size(2)
    conn.sendall(b"abcdef")
    assert pump(client, lambda: len(listener.received) >= 6)
    assert listener.received == b"abcdef"
    assert all(len(chunk) <= 2 for _, _, chunk in listener.data)


def test_peer_close_reported(pair):
    client, conn, listener = pair
    conn.close()
    assert pump(client, lambda: listener.closed)
    assert listener.closed == [(4, 0)]
    assert client.connected is False
    with pytest.raises(TransportError):
        client.heartbeat()


def test_close_drops_queue(pair):
    client, conn, listener = pair
    client.send(9, b"never")
    client.close()
    assert client.queue_length == 0
    assert conn.recv(10) == b""
    assert listener.acks == []
    with pytest.raises(TransportError):
        client.heartbeat()


def test_heartbeat_before_connect_raises():
    client = TCPClient(Recorder())
    with pytest.raises(TransportError):
        client.heartbeat()


def test_connect_refused_raises():
    probe = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    probe.bind(("127.0.0.1", 0))
    port = probe.getsockname()[1]
    probe.close()
    client = TCPClient(Recorder())
    client.set_select_timeout(1, 0)
    with pytest.raises(TransportError):
        client.connect("127.0.0.1", port)
    assert client.connected is False


def test_queue_limit():
    client = TCPClient(Recorder())
    client.set_max_data_queue_length(1)
    client.send(1, b"x")
    with pytest.raises(TransportError):
        client.send(2, b"y")
    assert client.queue_length == 1