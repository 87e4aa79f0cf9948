"""Single-producer outward byte stream with a close-once guarantee."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

__all__ = ["OutputStream", "StreamClosedError"]


class StreamClosedError(RuntimeError):
    """Raised when writing to, or closing, an already closed stream."""


class OutputStream:
    """Push-based channel between one producer and one reading consumer.

    The producer calls ``write`` and finally ``close``; the consumer iterates
    the stream and receives UTF-8 chunks in write order until the stream is
    closed.  Writing after close and closing twice both raise
    ``StreamClosedError``.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[bytes | None] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def write(self, text: str) -> None:
        if self._closed:
            raise StreamClosedError("cannot write to a closed output stream")
        if text:
            self._queue.put_nowait(text.encode("utf-8"))

    def close(self) -> None:
        if self._closed:
            raise StreamClosedError("output stream is already closed")
        self._closed = True
        self._queue.put_nowait(None)

    @asynccontextmanager
    async def writing(self) -> AsyncIterator[OutputStream]:
        """Yield the stream for writing and close it on every exit path."""
        try:
            yield self
        finally:
            self.close()

    async def __aiter__(self) -> AsyncIterator[bytes]:
        while True:
            chunk = await self._queue.get()
            if chunk is None:
                return
            yield chunk
