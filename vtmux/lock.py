"""Exclusive access to the single outgoing stream shared by all connections.

Frames from different logical connections must never interleave on the
wire. Every connection therefore writes through one :class:`SharedWriter`
and keeps it locked for as long as a frame is partly sent.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Protocol


class AsyncByteWriter(Protocol):
    """The part of :class:`asyncio.StreamWriter` the mux relies on."""

    def write(self, data: bytes) -> None: ...

    async def drain(self) -> None: ...

    def is_closing(self) -> bool: ...


class SharedWriter:
    """An output stream guarded by an :class:`asyncio.Lock`."""

    __slots__ = ("_writer", "_lock")

    def __init__(self, writer: AsyncByteWriter) -> None:
        self._writer = writer
        self._lock = asyncio.Lock()

    @asynccontextmanager
    async def locked(self) -> AsyncIterator[AsyncByteWriter]:
        """Hold the stream for the duration of the ``async with`` block."""
        async with self._lock:
            yield self._writer

    async def write_all(self, data: bytes) -> None:
        """Write *data* as one uninterrupted piece and wait until it drains."""
        async with self.locked() as writer:
            if writer.is_closing():
                raise BrokenPipeError("underlying stream is closed")
            writer.write(data)
            await writer.drain()

    def is_locked(self) -> bool:
        """Whether some task currently holds the stream."""
        return self._lock.locked()

    def __repr__(self) -> str:
        return f"SharedWriter(locked={self._lock.locked()})"