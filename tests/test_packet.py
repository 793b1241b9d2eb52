import struct
import uuid

import pytest

from jpnet.packet import (
    HEADER_LEN,
    STATE_OK,
    PacketHeader,
    PacketType,
    TcpPacket,
    TcpRequestPacket,
    TcpResponsePacket,
    TlossPacket,
)


def _request(body=b'{"a":1}'):
    packet = TcpRequestPacket()
    packet.header.packet_id = b"id-1"
    packet.body = body
    return packet


def test_header_round_trip():
    header = PacketHeader(packet_type=PacketType.REQUEST, client_id=b"c1", packet_id=b"p1", body_len=7)
    packed = header.pack()
    assert len(packed) == HEADER_LEN
    back = PacketHeader.unpack(packed)
    assert back.body_len == 7
    assert back.packet_type == PacketType.REQUEST
    assert back.client_id.rstrip(b"\0") == b"c1"


def test_header_unpack_too_short():
    with pytest.raises(ValueError):
        PacketHeader.unpack(b"\x00" * (HEADER_LEN - 1))


def test_serialize_layout():
    wire = _request().serialize()
    assert len(wire) == HEADER_LEN + 7
    assert struct.unpack("!I", wire[:4])[0] == HEADER_LEN
    assert wire[4] == 1
    assert wire.endswith(b'{"a":1}')


def test_deserialize_whole_packet():
    wire = _request().serialize()
    packet = TcpPacket()
    used, complete = packet.deserialize(wire + b"extra")
    assert used == len(wire)
    assert complete
    assert packet.body == b'{"a":1}'
    assert packet.packet_id() == "id-1"


def test_deserialize_byte_by_byte():
    wire = _request().serialize()
    packet = TcpPacket()
    results = [packet.deserialize(wire[i : i + 1]) for i in range(len(wire))]
    assert all(used == 1 for used, _ in results)
    assert [complete for _, complete in results].count(True) == 1
    assert results[-1][1] is True
    assert packet.body == b'{"a":1}'


def test_header_only_is_incomplete_until_body_arrives():
    wire = _request().serialize()
    packet = TcpPacket()
    assert packet.deserialize(wire[:HEADER_LEN]) == (HEADER_LEN, False)
    assert packet.deserialize(wire[HEADER_LEN:]) == (len(wire) - HEADER_LEN, True)


def test_empty_body_completes_with_header():
    wire = _request(body=b"").serialize()
    packet = TcpPacket()
    assert packet.deserialize(wire) == (HEADER_LEN, True)


def test_deserialize_rejects_empty_input():
    with pytest.raises(ValueError):
        TcpPacket().deserialize(b"")


def test_create_response_from_request():
    request = _request()
    request.header.state = b"FAIL"
    response = request.create_response()
    assert response.header.packet_type == PacketType.RESPONSE
    assert response.header.state == STATE_OK
    assert response.packet_id() == request.packet_id()
    assert request.header.packet_type == PacketType.REQUEST


def test_create_response_from_non_request():
    assert TcpResponsePacket().create_response() is None
    assert TcpPacket().create_response() is None


def test_tloss_serialize():
    packet = TlossPacket("client-7")
    wire = packet.serialize()
    parsed = TcpPacket()
    parsed.deserialize(wire)
    assert parsed.body == b'{"cmd":"tloss"}'
    assert parsed.header.client_id.rstrip(b"\0") == b"client-7"
    assert parsed.header.packet_type == PacketType.REQUEST
    assert str(uuid.UUID(parsed.packet_id())) == parsed.packet_id()


def test_tloss_packet_ids_differ():
    packet = TlossPacket("client-7")
    packet.serialize()
    first = packet.packet_id()
    packet.serialize()
    assert packet.packet_id() != first
    assert packet.packet == packet.serialize()[:0] + packet.packet