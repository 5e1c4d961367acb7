# vtmux

Building blocks for running many independent byte-stream connections over a
single stream, such as one TCP connection, on `asyncio`.

The package provides the following:

- the address type that names each logical connection,
- the frame format used on the shared stream,
- a buffer that builds outgoing frames,
- a demultiplexer that splits the incoming stream into one reader per connection,
- a lock that keeps frames from different connections from interleaving on the
  outgoing stream.

It uses only the standard library.

## Installation

```
pip install vtmux
```

## Wire format

Each frame has three parts, in this order:

1. A 16-byte IPv6 address. IPv4 addresses are stored as IPv4-mapped IPv6.
2. A 2-byte big-endian port.
3. A 2-byte big-endian payload length, followed by up to 65535 bytes of payload.

The first two parts, 18 bytes in all, are the address. With the length, the
full header is 20 bytes.

A zero-length frame opens a connection that the receiving side does not know
yet. If the receiving side already knows the connection, a zero-length frame
closes it.

The address only names the connection on the shared stream. It does not have
to be a real network endpoint.

## Modules

### `vtmux.addr`

`SocketAddr` is a frozen, ordered and hashable address with an 18-byte wire
form.

- `SocketAddr.parse("127.0.0.1:8080")` and `SocketAddr.parse("[::1]:8080")`
  parse text. Invalid input raises `ValueError`.
- `SocketAddr.from_host_port(host, port)` takes an IP address object or text,
  together with a port.
- `to_bytes()` and `SocketAddr.from_bytes(data)` convert to and from the wire
  form.
- `canonical_ip()` returns the IP address. IPv4-mapped addresses come back as
  IPv4. `str()` gives `a.b.c.d:port` or `[v6]:port`.

The helpers `parse_ip`, `ip_to_bytes` and `ip_from_bytes` work on bare IP
addresses.

### `vtmux.protocol`

- `FrameHeader(addr, length)` has `pack()` and `FrameHeader.unpack(data)`.
  `FrameHeader.empty(addr)` is the zero-length open or close marker.
- `PacketBuffer(addr)` collects the payload of one outgoing frame.
  - `push(data, written)` takes as much of `data` as the frame can still hold
    and returns the count. Here `written` is the number of frame bytes already
    on the wire. While the length field is partly sent, the frame may grow only
    in ways that leave the bytes already sent unchanged.
  - `bytes()` returns the whole frame.
  - `bytes_from(written)` returns the part of the frame not yet sent.
  - `must_flush_for(written)` tells whether the frame can take no more data.
  - Other methods: `is_full()`, `is_empty()`, `packet_size()` and `clear()`.

### `vtmux.read_buffer`

`ReadBuffer(capacity)` is a fixed-capacity buffer.

- `await fill(reader, limit=None)` reads once from any object with an awaitable
  `read(n)`. It returns the number of bytes read, `0` at end of stream, or
  `None` when the buffer has no room.
- `read(size=-1)` takes bytes from the front.
- `len()` gives the number of unread bytes and `spare()` the free room.

Space freed by reads is reused only after the buffer has been completely
drained.

### `vtmux.reader`

`SharedReader(reader, new_connections=None)` parses frames from one incoming
stream. The stream can be an `asyncio.StreamReader`. Each payload goes to the
`ConnectionReader` for its address.

- `add_connection(addr)` registers a reader for an address and returns it. It
  raises `OSError` if the address is already registered.
- `new_connections` is an `asyncio.Queue`. When the peer opens a connection,
  the queue receives `(addr, ConnectionReader)`. If `new_connections` is
  `None`, such requests are ignored.
- `await step()` advances the stream by one step. Concurrent callers share the
  step in progress. `await pump()` steps forever.
- A stream that ends in the middle of a frame raises `EOFError`. After any
  failure, every later step raises `BrokenPipeError`.
- Each connection buffers up to 131070 bytes. When one connection's buffer is
  full, the whole stream waits until that buffer is read. Payloads for
  addresses that have no live reader are discarded.

`ConnectionReader` reads from a single logical connection.

- `await read(n=-1)` returns up to `n` bytes, or `b""` once the peer has closed
  the connection.
- `await read_to_end()` returns everything until the peer closes the
  connection.
- `at_eof()` tells whether the connection is closed and fully read.

### `vtmux.lock` and `vtmux.flush`

`SharedWriter(writer)` guards one outgoing stream, such as an
`asyncio.StreamWriter`, with a lock.

- `async with shared.locked() as stream:` holds the stream for the duration of
  the block.
- `await write_all(data)` writes and drains `data` as a single piece. It raises
  `BrokenPipeError` if the stream is closing.
- `is_locked()` tells whether some task holds the stream.

`flush_packet(writer, buffer, written)` sends what remains of a
`PacketBuffer`'s frame, clears the buffer, and returns the number of bytes
sent. `write_eof_frame(writer, addr)` sends the close marker. Call both while
holding the stream.

## Example

Send one connection's data:

```python
from vtmux.addr import SocketAddr
from vtmux.flush import flush_packet, write_eof_frame
from vtmux.lock import SharedWriter
from vtmux.protocol import FrameHeader, PacketBuffer

async def send(writer, payload):
    addr = SocketAddr.parse("127.0.0.1:12345")
    shared = SharedWriter(writer)
    await shared.write_all(FrameHeader.empty(addr).pack())  # open

    buffer = PacketBuffer(addr)
    while payload:
        payload = payload[buffer.push(payload, 0):]
        async with shared.locked() as stream:
            await flush_packet(stream, buffer, 0)

    async with shared.locked() as stream:
        await write_eof_frame(stream, addr)  # close
```

Receive it on the other end:

```python
import asyncio
from vtmux.reader import SharedReader

async def receive(reader):
    queue = asyncio.Queue()
    shared = SharedReader(reader, queue)
    pump = asyncio.create_task(shared.pump())
    try:
        addr, conn = await queue.get()
        return addr, await conn.read_to_end()
    finally:
        pump.cancel()
```

## What the package does not do

The package has no ready-made connection objects that pair a reader and a
writer. It has no pipe or listener type that opens and accepts connections
for you.

It also has no per-connection writer. Such a writer would buffer writes into
frames, flush them, and send the close marker when it is shut down or dropped.
Outgoing data has to be framed by hand with `PacketBuffer`, `SharedWriter` and
`vtmux.flush`, as the example shows.

## Development

```
pip install -e ".[test]"
pytest
```