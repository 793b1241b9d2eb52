"""Length-prefixed TCP packets: a fixed header followed by a JSON body."""

from __future__ import annotations

import struct
import uuid
from dataclasses import dataclass, replace
from enum import IntEnum

_HEADER_STRUCT = struct.Struct("!I4sBB4s32s36sI")

HEADER_LEN = _HEADER_STRUCT.size
VERSION = b"\x01\x00\x00\x00"
PROTOCOL_JSONOBJ = 1
STATE_OK = b"0000"
CLIENT_ID_LEN = 32
PACKET_ID_LEN = 36


class PacketType(IntEnum):
    REQUEST = 1
    RESPONSE = 2


@dataclass
class PacketHeader:
    """The fixed-size packet header; integers go in network byte order."""

    headlen: int = HEADER_LEN
    version: bytes = VERSION
    protocol: int = PROTOCOL_JSONOBJ
    packet_type: int = 0
    state: bytes = STATE_OK
    client_id: bytes = b""
    packet_id: bytes = b""
    body_len: int = 0

    def pack(self) -> bytes:
        return _HEADER_STRUCT.pack(
            self.headlen,
            self.version,
            self.protocol,
            int(self.packet_type),
            self.state,
            self.client_id,
            self.packet_id,
            self.body_len,
        )

    @classmethod
    def unpack(cls, data: bytes) -> PacketHeader:
        if len(data) < HEADER_LEN:
            raise ValueError(f"header needs {HEADER_LEN} bytes, got {len(data)}")
        fields = _HEADER_STRUCT.unpack(bytes(data[:HEADER_LEN]))
        return cls(*fields)


class TcpPacket:
    """A packet that can be serialized whole or parsed from a byte stream."""

    def __init__(self) -> None:
        self.header = PacketHeader()
        self._body = bytearray()
        self._packet = b""
        self._parse_len = 0
        self._header_buf = bytearray()
        self._complete = False

    @property
    def body(self) -> bytes:
        return bytes(self._body)

    @body.setter
    def body(self, value: bytes | str) -> None:
        if isinstance(value, str):
            value = value.encode("utf-8")
        self._body = bytearray(value)

    @property
    def packet(self) -> bytes:
        """The bytes produced by the last :meth:`serialize`."""
        return self._packet

    @property
    def complete(self) -> bool:
        return self._complete

    def serialize(self) -> bytes:
        """Build header and body into the wire form and return it."""
        self.header.body_len = len(self._body)
        self._packet = self.header.pack() + bytes(self._body)
        return self._packet

    def deserialize(self, data: bytes) -> tuple[int, bool]:
        """Consume bytes of this packet from ``data``.

        Returns how many bytes were used and whether the packet is complete.
        """
        if not data:
            raise ValueError("no data to deserialize")
        view = memoryview(data)
        used = 0

        if self._parse_len < HEADER_LEN:
            take = min(HEADER_LEN - self._parse_len, len(view))
            self._header_buf += view[:take]
            used += take
            self._parse_len += take
            if self._parse_len == HEADER_LEN:
                self.header = PacketHeader.unpack(self._header_buf)

        if self._parse_len >= HEADER_LEN:
            body_len = self.header.body_len
            if body_len == 0:
                self._complete = True
            elif used < len(view):
                take = min(body_len - (self._parse_len - HEADER_LEN), len(view) - used)
                self._body += view[used : used + take]
                used += take
                self._parse_len += take
                if self._parse_len == HEADER_LEN + body_len:
                    self._complete = True

        return used, self._complete

    def packet_id(self) -> str:
        return self.header.packet_id.rstrip(b"\0").decode("latin-1")

    def create_response(self) -> TcpPacket | None:
        """A response carrying this request's header, or None for non-requests."""
        if self.header.packet_type != PacketType.REQUEST:
            return None
        response = TcpPacket()
        response.header = replace(
            self.header, packet_type=PacketType.RESPONSE, state=STATE_OK
        )
        return response


class TcpResponsePacket(TcpPacket):
    def __init__(self) -> None:
        super().__init__()
        self.header.packet_type = PacketType.RESPONSE


class TcpRequestPacket(TcpPacket):
    def __init__(self) -> None:
        super().__init__()
        self.header.packet_type = PacketType.REQUEST


class TlossPacket(TcpRequestPacket):
    """The ``tloss`` request, stamped with a client id and a fresh packet id."""

    def __init__(self, client_id: str) -> None:
        super().__init__()
        self.client_id = client_id

    def serialize(self) -> bytes:
        self.body = b'{"cmd":"tloss"}'
        self.header.client_id = self.client_id.encode("utf-8")[:CLIENT_ID_LEN]
        self.header.packet_id = str(uuid.uuid4()).encode("ascii")[:PACKET_ID_LEN]
        return super().serialize()