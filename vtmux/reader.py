"""Demultiplexing of one incoming byte stream into per-connection readers.

A single :class:`SharedReader` owns the underlying stream. It parses
frames and hands each payload to the :class:`ConnectionReader` whose
address the frame carries. Whichever task needs data drives the shared
reader one step at a time. A buffer that fills up holds the whole stream
back until its consumer reads from it.
"""

from __future__ import annotations

import asyncio
import errno
import weakref
from dataclasses import dataclass, field

from vtmux.addr import SocketAddr
from vtmux.protocol import HEADER_SIZE, PACKET_SIZE, FrameHeader
from vtmux.read_buffer import AsyncByteReader, ReadBuffer

DEFAULT_BUFFER_CAPACITY = PACKET_SIZE * 2


class _Entry:
    """Buffered state of one logical connection, owned by its reader."""

    __slots__ = ("buffer", "closed", "abandoned", "space", "__weakref__")

    def __init__(self, capacity: int) -> None:
        self.buffer = ReadBuffer(capacity)
        self.closed = False
        self.abandoned = False
        self.space = asyncio.Event()

    def abandon(self) -> None:
        self.abandoned = True
        self.space.set()


@dataclass
class _NextPacket:
    header: bytearray = field(default_factory=bytearray)


@dataclass
class _Read:
    owner: SocketAddr
    left: int


@dataclass
class _SendSocket:
    item: tuple[SocketAddr, ConnectionReader]


class _Failed:
    pass


_State = _NextPacket | _Read | _SendSocket | _Failed


class ConnectionReader:
    """The receiving side of one logical connection."""

    def __init__(self, addr: SocketAddr, shared: SharedReader, entry: _Entry) -> None:
        self.addr = addr
        self._shared = shared
        self._entry = entry

    async def read(self, n: int = -1) -> bytes:
        """Return up to *n* bytes (all buffered bytes if negative); ``b""`` at end."""
        if n == 0:
            return b""
        entry = self._entry
        while True:
            if len(entry.buffer):
                chunk = entry.buffer.read(n)
                entry.space.set()
                return chunk
            if entry.closed:
                return b""
            await self._shared.step()

    async def read_to_end(self) -> bytes:
        """Read until the remote end closes this connection."""
        parts = []
        while chunk := await self.read():
            parts.append(chunk)
        return b"".join(parts)

    def at_eof(self) -> bool:
        """Whether the connection is closed and every byte has been read."""
        return self._entry.closed and not len(self._entry.buffer)

    def __repr__(self) -> str:
        return f"ConnectionReader(addr={self.addr!r}, eof={self.at_eof()})"


class SharedReader:
    """Parses frames from one stream and routes them to connection readers.

    *new_connections* is a queue that receives ``(addr, ConnectionReader)``
    for every connection the remote end opens, or ``None`` to ignore such
    requests.
    """

    def __init__(
        self,
        reader: AsyncByteReader,
        new_connections: asyncio.Queue | None = None,
    ) -> None:
        self._reader = reader
        self._new_connections = new_connections
        self._connections: dict[SocketAddr, weakref.ref[_Entry]] = {}
        self._state: _State = _NextPacket()
        self._stepping: asyncio.Event | None = None

    def add_connection(self, addr: SocketAddr) -> ConnectionReader:
        """Register a reader for *addr*; raise ``OSError`` if it is taken."""
        return self._insert(addr)

    async def step(self) -> None:
        """Advance the stream by one step, or wait for the step in progress."""
        if self._stepping is not None:
            await self._stepping.wait()
            return
        done = asyncio.Event()
        self._stepping = done
        try:
            await self._step_once()
        finally:
            self._stepping = None
            done.set()

    async def pump(self) -> None:
        """Keep stepping until the stream fails; never returns normally."""
        while True:
            await self.step()
            await asyncio.sleep(0)

    def _insert(self, addr: SocketAddr) -> ConnectionReader:
        if addr in self._connections:
            raise OSError(errno.EADDRINUSE, "duplicate socket entry")
        entry = _Entry(DEFAULT_BUFFER_CAPACITY)
        conn = ConnectionReader(addr, self, entry)
        weakref.finalize(conn, entry.abandon)
        self._connections[addr] = weakref.ref(entry)
        return conn

    def _lookup(self, addr: SocketAddr) -> _Entry | None:
        ref = self._connections.get(addr)
        if ref is None:
            return None
        entry = ref()
        if entry is None or entry.abandoned:
            return None
        return entry

    def _remove(self, addr: SocketAddr) -> None:
        ref = self._connections.pop(addr, None)
        entry = ref() if ref is not None else None
        if entry is not None:
            entry.closed = True

    def _fail(self, error: Exception) -> Exception:
        self._state = _Failed()
        return error

    async def _step_once(self) -> None:
        match self._state:
            case _Read() as state:
                await self._step_read(state)
            case _NextPacket() as state:
                await self._step_header(state)
            case _SendSocket(item=item):
                # Whether the connection is ever accepted does not matter here.
                await self._new_connections.put(item)
                self._state = _NextPacket()
            case _Failed():
                raise BrokenPipeError("socket hit fatal error")

    async def _step_read(self, state: _Read) -> None:
        entry = self._lookup(state.owner)
        if entry is None:
            got = len(await self._reader.read(state.left))
        else:
            try:
                got = await entry.buffer.fill(self._reader, state.left)
            except ValueError as exc:
                raise self._fail(ConnectionError(str(exc))) from None
            if got is None:
                entry.space.clear()
                await entry.space.wait()
                return
        if got == 0:
            raise self._fail(EOFError(f"expected {state.left} more bytes"))
        if got > state.left:
            raise self._fail(ConnectionError("read more bytes than in provided buffer"))
        state.left -= got
        if state.left == 0:
            self._state = _NextPacket()

    async def _step_header(self, state: _NextPacket) -> None:
        missing = HEADER_SIZE - len(state.header)
        chunk = await self._reader.read(missing)
        if not chunk:
            raise self._fail(EOFError("eof on header read"))
        if len(chunk) > missing:
            raise self._fail(ConnectionError("reader read more bytes than were provided"))
        state.header += chunk
        if len(state.header) < HEADER_SIZE:
            return

        header = FrameHeader.unpack(bytes(state.header))
        addr = header.addr
        if header.length:
            self._state = _Read(addr, header.length)
        elif addr in self._connections:
            self._remove(addr)
            self._state = _NextPacket()
        elif self._new_connections is None:
            self._state = _NextPacket()
        else:
            conn = self._insert(addr)
            self._state = _SendSocket((addr, conn))