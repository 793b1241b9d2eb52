"""Splits a TCP byte stream into whole packets."""

from __future__ import annotations

from abc import ABC, abstractmethod

from .packet import TcpPacket


class PacketListener(ABC):
    """Receives every packet a :class:`PacketParser` completes."""

    @abstractmethod
    def on_packet(self, engine_id: int, conn_id: int, packet: TcpPacket) -> None:
        """Called once for each complete packet."""


class PacketParser:
    """Feeds stream data into packets and reports each one when it is whole.

    A packet cut off at the end of one chunk is kept and completed by the
    chunks that follow.
    """

    def __init__(self, listener: PacketListener, engine_id: int = 0) -> None:
        self._listener = listener
        self._engine_id = engine_id
        self._partial: TcpPacket | None = None

    @property
    def has_partial(self) -> bool:
        """True while a started packet is waiting for more bytes."""
        return self._partial is not None

    def parse(self, data: bytes) -> None:
        """Consume one chunk of stream data."""
        view = memoryview(data)
        if not view:
            return
        if self._partial is not None:
            used, complete = self._partial.deserialize(view)
            view = view[used:]
            if complete:
                packet, self._partial = self._partial, None
                self._listener.on_packet(self._engine_id, 0, packet)
        self._parse_fresh(view)

    def _parse_fresh(self, view: memoryview) -> None:
        while view:
            packet = TcpPacket()
            used, complete = packet.deserialize(view)
            view = view[used:]
            if complete:
                self._listener.on_packet(self._engine_id, 0, packet)
            else:
                self._partial = packet

    def reset(self) -> None:
        """Drop any partly received packet."""
        self._partial = None