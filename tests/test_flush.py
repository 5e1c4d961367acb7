import asyncio

import pytest

from vtmux.addr import SocketAddr
from vtmux.flush import flush_packet, write_eof_frame
from vtmux.protocol import HEADER_SIZE, FrameHeader, PacketBuffer

ADDR = SocketAddr.parse("127.0.0.1:8080")


class FakeWriter:
    def __init__(self, closing=False):
        self.data = bytearray()
        self.closing = closing

    def write(self, data):
        self.data += data

    async def drain(self):
        await asyncio.sleep(0)

    def is_closing(self):
        return self.closing


@pytest.mark.asyncio
async def test_flush_whole_frame():
    fake = FakeWriter()
    buffer = PacketBuffer(ADDR)
    buffer.push(b"\x01\x02\x03\x04\x05", 0)
    frame = buffer.bytes()
    sent = await flush_packet(fake, buffer, 0)
    assert sent == len(frame)
    assert bytes(fake.data) == frame
    assert buffer.is_empty()
    header = FrameHeader.unpack(bytes(fake.data[:HEADER_SIZE]))
    assert header.addr == ADDR
    assert header.length == 5
    assert bytes(fake.data[HEADER_SIZE:]) == b"\x01\x02\x03\x04\x05"


@pytest.mark.asyncio
async def test_flush_from_offset_sends_only_tail():
    fake = FakeWriter()
    buffer = PacketBuffer(ADDR)
    buffer.push(b"payload", 0)
    frame = buffer.bytes()
    sent = await flush_packet(fake, buffer, 3)
    assert sent == len(frame) - 3
    assert frame[:3] + bytes(fake.data) == frame
    assert buffer.is_empty()


@pytest.mark.asyncio
async def test_flush_empty_buffer_sends_empty_header():
    fake = FakeWriter()
    buffer = PacketBuffer(ADDR)
    sent = await flush_packet(fake, buffer, 0)
    assert sent == HEADER_SIZE
    assert bytes(fake.data) == FrameHeader.empty(ADDR).pack()


@pytest.mark.asyncio
async def test_flush_fully_written_sends_nothing():
    fake = FakeWriter()
    buffer = PacketBuffer(ADDR)
    buffer.push(b"abc", 0)
    total = len(buffer.bytes())
    sent = await flush_packet(fake, buffer, total)
    assert sent == 0
    assert bytes(fake.data) == b""
    assert buffer.is_empty()


@pytest.mark.asyncio
async def test_flush_on_closing_stream_keeps_buffer():
    fake = FakeWriter(closing=True)
    buffer = PacketBuffer(ADDR)
    buffer.push(b"abc", 0)
    with pytest.raises(BrokenPipeError):
        await flush_packet(fake, buffer, 0)
    assert buffer.packet_size() == 3
    assert bytes(fake.data) == b""


@pytest.mark.asyncio
async def test_flush_offset_past_frame_raises():
    fake = FakeWriter()
    buffer = PacketBuffer(ADDR)
    with pytest.raises(ValueError):
        await flush_packet(fake, buffer, HEADER_SIZE + 1)


@pytest.mark.asyncio
async def test_write_eof_frame():
    fake = FakeWriter()
    await write_eof_frame(fake, ADDR)
    assert bytes(fake.data) == FrameHeader.empty(ADDR).pack()
    header = FrameHeader.unpack(bytes(fake.data))
    assert header.addr == ADDR
    assert header.length == 0


@pytest.mark.asyncio
async def test_write_eof_frame_on_closing_stream_raises():
    fake = FakeWriter(closing=True)
    with pytest.raises(BrokenPipeError):
        await write_eof_frame(fake, ADDR)
    assert bytes(fake.data) == b""