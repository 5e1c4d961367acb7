"""Frame headers and the outgoing packet buffer of the mux wire protocol.

A frame is an 18-byte address, a two-byte big-endian payload length and
the payload. A frame with length zero opens a connection the first time
an address is seen and closes it afterwards.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass

from vtmux.addr import ADDR_SIZE, SocketAddr

PACKET_SIZE = 0xFFFF
LEN_SIZE = 2
HEADER_SIZE = ADDR_SIZE + LEN_SIZE
# Once this many bytes of a frame are on the wire, the high length byte is fixed.
LEN_FIELD_CUTOFF = ADDR_SIZE + 1

_LEN = struct.Struct(">H")


@dataclass(frozen=True)
class FrameHeader:
    """The address and payload length that start every frame."""

    addr: SocketAddr
    length: int = 0

    def __post_init__(self) -> None:
        if not 0 <= self.length <= PACKET_SIZE:
            raise ValueError(f"frame length out of range: {self.length}")

    @classmethod
    def empty(cls, addr: SocketAddr) -> FrameHeader:
        """A header with no payload: the open or close marker."""
        return cls(addr, 0)

    def pack(self) -> bytes:
        return self.addr.to_bytes() + _LEN.pack(self.length)

    @classmethod
    def unpack(cls, data: bytes) -> FrameHeader:
        if len(data) != HEADER_SIZE:
            raise ValueError(f"expected {HEADER_SIZE} header bytes, got {len(data)}")
        addr = SocketAddr.from_bytes(data[:ADDR_SIZE])
        (length,) = _LEN.unpack_from(data, ADDR_SIZE)
        return cls(addr, length)


class PacketBuffer:
    """One outgoing frame, filled by writes and drained by flushes.

    ``written`` arguments count bytes of the whole frame, header included,
    that are already on the wire. While the length field is partly sent the
    buffer may only grow in ways that leave the sent bytes unchanged.
    """

    __slots__ = ("addr", "_prefix", "_data")

    def __init__(self, addr: SocketAddr) -> None:
        self.addr = addr
        self._prefix = addr.to_bytes()
        self._data = bytearray()

    def packet_size(self) -> int:
        return len(self._data)

    def is_full(self) -> bool:
        return self.packet_size() == PACKET_SIZE

    def is_empty(self) -> bool:
        return not self._data

    def must_flush_for(self, written: int) -> bool:
        """Whether no more data can be taken while *written* bytes are sent."""
        if written < LEN_FIELD_CUTOFF:
            return self.is_full()
        if written == LEN_FIELD_CUTOFF:
            return self.packet_size() & 0xFF == 0xFF
        return True

    def clear(self) -> None:
        self._data.clear()

    def push(self, data: bytes, written: int) -> int:
        """Append as much of *data* as allowed; return how many bytes were taken."""
        if written < LEN_FIELD_CUTOFF:
            room = PACKET_SIZE - self.packet_size()
        elif written == LEN_FIELD_CUTOFF:
            room = 0xFF - (self.packet_size() & 0xFF)
        else:
            return 0
        chunk = data[:room]
        self._data += chunk
        return len(chunk)

    def bytes(self) -> bytes:
        """The whole frame: header followed by the buffered payload."""
        return self._prefix + _LEN.pack(self.packet_size()) + self._data

    def bytes_from(self, written: int) -> bytes:
        """The part of the frame not yet on the wire."""
        frame = self.bytes()
        if not 0 <= written <= len(frame):
            raise ValueError(f"written offset {written} outside frame of {len(frame)} bytes")
        return frame[written:]

    def __repr__(self) -> str:
        return f"PacketBuffer(addr={self.addr!r}, size={self.packet_size()})"