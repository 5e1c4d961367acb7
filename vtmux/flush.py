"""Sending buffered frames on a stream that the caller already holds."""

from __future__ import annotations

from vtmux.addr import SocketAddr
from vtmux.lock import AsyncByteWriter
from vtmux.protocol import FrameHeader, PacketBuffer


async def _send(writer: AsyncByteWriter, data: bytes) -> None:
    if writer.is_closing():
        raise BrokenPipeError("failed to flush packet buffer")
    writer.write(data)
    await writer.drain()


async def flush_packet(writer: AsyncByteWriter, buffer: PacketBuffer, written: int) -> int:
    """Send the part of *buffer*'s frame past *written* bytes, then clear it.

    Returns how many bytes were sent by this call. The buffer is left
    untouched if sending fails.
    """
    rest = buffer.bytes_from(written)
    if rest:
        await _send(writer, rest)
    buffer.clear()
    return len(rest)


async def write_eof_frame(writer: AsyncByteWriter, addr: SocketAddr) -> None:
    """Send the empty frame that closes the connection at *addr*."""
    await _send(writer, FrameHeader.empty(addr).pack())