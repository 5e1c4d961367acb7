import pytest

from vtmux.addr import ADDR_SIZE, SocketAddr
from vtmux.protocol import (
    HEADER_SIZE,
    LEN_FIELD_CUTOFF,
    PACKET_SIZE,
    FrameHeader,
    PacketBuffer,
)

DUMMY_ADDR = SocketAddr.parse("127.0.0.1:8080")


def test_packet_buffer_initialization():
    buffer = PacketBuffer(DUMMY_ADDR)
    assert buffer.addr == DUMMY_ADDR
    assert buffer.packet_size() == 0
    assert buffer.is_empty()


def test_boxed_construction():
    buffer = PacketBuffer(DUMMY_ADDR)
    assert buffer.addr == DUMMY_ADDR
    assert buffer.bytes() == FrameHeader.empty(DUMMY_ADDR).pack()


def test_push_data():
    buffer = PacketBuffer(DUMMY_ADDR)
    pushed = buffer.push(bytes([1, 2, 3, 4, 5]), 0)
    assert pushed == 5
    assert buffer.packet_size() == 5
    data_offset = ADDR_SIZE + 2
    assert buffer.bytes()[data_offset : data_offset + 5] == bytes([1, 2, 3, 4, 5])


def test_push_multiple_times():
    buffer = PacketBuffer(DUMMY_ADDR)
    assert buffer.push(bytes([1, 2, 3]), 0) == 3
    assert buffer.packet_size() == 3
    assert buffer.push(bytes([4, 5]), 0) == 2
    assert buffer.packet_size() == 5
    data_offset = ADDR_SIZE + 2
    assert buffer.bytes()[data_offset : data_offset + 5] == bytes([1, 2, 3, 4, 5])


def test_current_bytes():
    buffer = PacketBuffer(DUMMY_ADDR)
    buffer.push(bytes([1, 2, 3, 4, 5]), 0)
    remaining = buffer.bytes_from(3)
    assert len(remaining) == len(buffer.bytes()) - 3
    assert remaining == buffer.bytes()[3:]


def test_push_limit_with_written():
    buffer = PacketBuffer(DUMMY_ADDR)
    buffer.push(bytes([1, 2, 3, 4, 5]), 0)
    written = ADDR_SIZE + 1
    data2 = bytes([6, 7, 8, 9, 10])
    pushed = buffer.push(data2, written)
    assert pushed > 0
    assert buffer.push(data2, written + pushed) == 0


def test_push_caps_at_packet_size():
    buffer = PacketBuffer(DUMMY_ADDR)
    assert buffer.push(b"\x00" * (PACKET_SIZE + 10), 0) == PACKET_SIZE
    assert buffer.is_full()
    assert buffer.must_flush_for(0)
    assert buffer.push(b"\x01", 0) == 0
    assert len(buffer.bytes()) == HEADER_SIZE + PACKET_SIZE


def test_push_at_cutoff_keeps_high_length_byte():
    buffer = PacketBuffer(DUMMY_ADDR)
    buffer.push(b"\xaa" * 5, 0)
    high_before = buffer.bytes()[ADDR_SIZE]
    taken = buffer.push(b"\xbb" * 1000, LEN_FIELD_CUTOFF)
    assert taken == 250
    assert buffer.packet_size() == 255
    assert buffer.bytes()[ADDR_SIZE] == high_before
    assert buffer.must_flush_for(LEN_FIELD_CUTOFF)


def test_must_flush_for():
    buffer = PacketBuffer(DUMMY_ADDR)
    buffer.push(b"\x00" * 5, 0)
    assert not buffer.must_flush_for(0)
    assert not buffer.must_flush_for(LEN_FIELD_CUTOFF)
    assert buffer.must_flush_for(LEN_FIELD_CUTOFF + 1)


def test_clear_resets_frame():
    buffer = PacketBuffer(DUMMY_ADDR)
    buffer.push(b"payload", 0)
    buffer.clear()
    assert buffer.is_empty()
    assert buffer.bytes() == FrameHeader.empty(DUMMY_ADDR).pack()


def test_bytes_from_out_of_range():
    buffer = PacketBuffer(DUMMY_ADDR)
    with pytest.raises(ValueError):
        buffer.bytes_from(HEADER_SIZE + 1)


def test_buffer_header_matches_frame_header():
    buffer = PacketBuffer(DUMMY_ADDR)
    buffer.push(b"hello", 0)
    header = FrameHeader.unpack(buffer.bytes()[:HEADER_SIZE])
    assert header == FrameHeader(DUMMY_ADDR, 5)


def test_empty_header_wire_bytes():
    packed = FrameHeader.empty(DUMMY_ADDR).pack()
    assert packed == (
        b"\x00" * 10 + b"\xff\xff" + bytes([127, 0, 0, 1]) + b"\x1f\x90" + b"\x00\x00"
    )


@pytest.mark.parametrize("length", [0, 1, 255, 256, PACKET_SIZE])
def test_header_round_trip(length):
    header = FrameHeader(SocketAddr.parse("[::1]:12346"), length)
    packed = header.pack()
    assert len(packed) == HEADER_SIZE
    assert FrameHeader.unpack(packed) == header


def test_header_rejects_bad_input():
    with pytest.raises(ValueError):
        FrameHeader.unpack(b"\x00" * (HEADER_SIZE - 1))
    with pytest.raises(ValueError):
        FrameHeader(DUMMY_ADDR, PACKET_SIZE + 1)