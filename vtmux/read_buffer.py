"""A fixed-capacity byte buffer that sits between a stream and its consumer.

Bytes are appended at the back by :meth:`ReadBuffer.fill` and taken from
the front by :meth:`ReadBuffer.read`. Space freed by reads is reclaimed
only once the buffer has been drained completely, so a full buffer stays
full until its consumer catches up.
"""

from __future__ import annotations

from typing import Protocol


class AsyncByteReader(Protocol):
    """Anything with an awaitable ``read(n)`` returning at most *n* bytes."""

    async def read(self, n: int) -> bytes: ...


class ReadBuffer:
    """Buffered bytes for one logical connection."""

    __slots__ = ("capacity", "_data", "_pos")

    def __init__(self, capacity: int) -> None:
        if isinstance(capacity, bool) or not isinstance(capacity, int):
            raise TypeError(f"capacity must be an int, got {type(capacity).__name__}")
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self.capacity = capacity
        self._data = bytearray()
        self._pos = 0

    def __len__(self) -> int:
        """Number of buffered bytes not yet read."""
        return len(self._data) - self._pos

    def spare(self) -> int:
        """Room left for :meth:`fill` before the buffer must be drained."""
        return self.capacity - len(self._data)

    async def fill(self, reader: AsyncByteReader, limit: int | None = None) -> int | None:
        """Read once from *reader* into the free space.

        At most ``limit`` bytes are requested when it is given. Returns
        ``None`` when there is no free space, otherwise the number of bytes
        read, which is zero at end of stream.
        """
        room = self.spare()
        if room == 0:
            return None
        if limit is not None:
            if limit < 0:
                raise ValueError(f"limit must not be negative, got {limit}")
            room = min(room, limit)
        chunk = await reader.read(room)
        if len(chunk) > room:
            raise ValueError(f"reader returned {len(chunk)} bytes, more than the {room} requested")
        self._data += chunk
        return len(chunk)

    def read(self, size: int = -1) -> bytes:
        """Take up to *size* buffered bytes from the front; all of them if negative."""
        available = len(self)
        count = available if size < 0 else min(size, available)
        if count == 0:
            return b""
        start = self._pos
        self._pos += count
        chunk = bytes(self._data[start : self._pos])
        if self._pos == len(self._data):
            self._data.clear()
            self._pos = 0
        return chunk

    def __repr__(self) -> str:
        return f"ReadBuffer(capacity={self.capacity}, buffered={len(self)})"