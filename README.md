# jpnet

A small library of building blocks for networked services:

- `jpnet.jptime.JPTime`: a millisecond time value, used both as a point in
  time and as a duration. It supports `+`, `-` and ordering, and formats
  local time with `to_date_time()` and `to_date_time_accuracy()`.
- `jpnet.rec_mutex.RecursiveMutex`: a re-entrant mutex with `lock`,
  `try_lock`, `unlock`, `will_unlock`. It can also be used as a context manager.
- `jpnet.cond.Cond`: a condition variable with `signal`, `broadcast`,
  `wait(lock)` and `timed_wait(lock, timeout)`. It works with a
  `RecursiveMutex` or with any held lock that has `locked()`.
- `jpnet.data_row.DataRow` and `DataRowPool`: send-queue entries that are
  recycled through a thread-safe pool.
- `jpnet.bits`: `bit_enabled`, `bit_disabled`, `bit_cmp_mask`, `set_bits`,
  `clr_bits`.
- `jpnet.thread_base.ThreadBase`: an abstract thread object. You implement
  `run()` and control it with `start()` (allowed only once), `join()`,
  `detach()` and `is_alive()`.
- `jpnet.task_timer.TaskTimerThread` and `Timer`: a worker thread that runs
  tasks from a bounded queue and fires periodic or one-shot timers between
  them.
- `jpnet.http_client.HttpClient`: GET and POST requests with sticky request
  fields, redirects, fixed timeouts (10 s to connect, 60 s overall) and an
  optional proxy.
- `jpnet.packet`: a framing format made of a fixed header and a body.
  It provides `PacketHeader`, `TcpPacket`, `TcpRequestPacket`,
  `TcpResponsePacket` and `TlossPacket`.
- `jpnet.packet_parser.PacketParser`: turns a byte stream into whole packets
  and reports each one to a `PacketListener`.
- `jpnet.transport`, `jpnet.tcp_client.TCPClient` and
  `jpnet.tcp_server.TCPServer`: non-blocking TCP transports driven by
  repeated `heartbeat()` calls. Their events go to a `TransportListener`.

## Installing

```
pip install jpnet
```

## Framing packets

```python
from jpnet.packet import TcpRequestPacket
from jpnet.packet_parser import PacketParser, PacketListener

class Printer(PacketListener):
    def on_packet(self, engine_id, conn_id, packet):
        print(packet.body)

request = TcpRequestPacket()
request.body = b'{"cmd":"ping"}'
wire = request.serialize()

parser = PacketParser(Printer())
parser.parse(wire[:10])
parser.parse(wire[10:])   # the packet is reported once it is complete
```

`TcpPacket.deserialize(data)` reads bytes into a single packet. It returns
`(bytes_used, complete)`.

`create_response()` builds a response packet that carries the request's
header. It returns `None` when the packet is not a request.

`TlossPacket(client_id).serialize()` writes the body `{"cmd":"tloss"}` and
stamps the client id and a fresh UUID as the packet id.

## Tasks and timers

```python
from jpnet.jptime import JPTime
from jpnet.task_timer import TaskTimerThread, Timer

worker = TaskTimerThread("worker")
worker.create_timer(Timer(JPTime.seconds(1), lambda: print("tick")))
worker.start()
worker.add_task(lambda: print("task"))
# ...
worker.terminate()
worker.join()
```

Tasks are handled as follows:

- A callable task is called.
- Any other task goes to `process()`. By default `process()` calls the task's
  `dotask()` if it has one.
- Errors raised by tasks and timers are logged, and the thread keeps running.
- `add_task` returns the queue length. The length stays unchanged when the
  queue is full (1024 entries by default).
- `set_exit_task` sets a task that runs once when the loop ends.

## A TCP client loop

```python
from jpnet.tcp_client import TCPClient
from jpnet.transport import TransportListener

class App(TransportListener):
    def on_data(self, engine_id, conn_id, data):
        print("received", data)

client = TCPClient(App())
client.connect("127.0.0.1", 9000)
client.send(1, b"hello")
while True:
    client.heartbeat()
```

## A TCP server loop

```python
from jpnet.tcp_server import TCPServer
from jpnet.transport import TransportListener

server = TCPServer(TransportListener())
port = server.listen("127.0.0.1", 0)  # returns the bound port
while True:
    server.heartbeat()
```

Each server `heartbeat()` does the following, in order:

1. Closes the clients marked with `close_client()`.
2. Accepts at most one new connection.
3. Reads from the clients that are ready.
4. Writes the queued data.

Listener events:

- `on_connect` returns 0 to accept a connection and 1 to refuse it. A server
  without a listener refuses every connection.
- `on_send_data_ack` reports a partial send. It returns 0 to keep sending and
  1 to drop the queue.
- Instead of subclassing `TransportListener`, you can pass callables to its
  constructor.

Failures raise `jpnet.transport.TransportError`. These include a failed
connect or listen, a heartbeat without a socket, a full send queue (see
`set_max_data_queue_length`) and an unknown connection id.

## HTTP

```python
from jpnet.http_client import HttpClient, HttpError

client = HttpClient()
client.add_request_field("Content-Type", "application/json")
body = client.post("http://localhost:8080/api", '{"cmd":"status"}')
print(client.status_code, client.response_fields)
```

Request fields stay set until `reset_request_field()` is called. Adding a
field that is already set keeps the old value.

Response header fields are recorded only for 2xx replies. `get()` clears the
previous response first; `post()` does not.

A request that cannot be completed raises `HttpError`.

## What it does not do

This is a library only. It has:

- no command-line program;
- no ready-made server application;
- no TLS for the TCP transports.

The transports do no work on their own. Your code must keep calling
`heartbeat()`.

## Running the tests

```
pip install -e ".[test]"
pytest
```