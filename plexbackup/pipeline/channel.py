# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
In-memory byte streams joining the pipeline stages.

ByteChannel is a bounded pipe: the producing stage blocks once
``max_chunks`` chunks are waiting, so a slow upload stalls compression
instead of growing memory. CountingReader sits in front of the uploader and
counts what it actually consumed.
"""

import asyncio

from plexbackup.exceptions import PipelineError
from plexbackup.storage import AsyncReader


class ByteChannel:
    """
    Bounded single-producer, single-consumer byte pipe.

    End of stream is only signalled by close(). A producer that fails calls
    fail() instead, and the reader raises rather than returning b"", so a
    truncated stream can never look complete.
    """

    def __init__(self, max_chunks: int = 4):
        if max_chunks < 1:
            raise ValueError(f"max_chunks must be >= 1, got {max_chunks}")
        self._queue: asyncio.Queue[bytes | None] = asyncio.Queue(maxsize=max_chunks)
        self._pending = b""
        self._error: BaseException | None = None
        self._closed = False
        self._eof = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def write(self, data: bytes) -> None:
        """Queue ``data`` for the reader, waiting while the channel is full."""
        if self._closed:
            raise PipelineError("write to a closed channel")
        if data:
            await self._queue.put(data)

    async def close(self) -> None:
        """Mark the stream as complete once the queued data is read."""
        if self._closed:
            return
        self._closed = True
        await self._queue.put(None)

    def fail(self, exc: BaseException) -> None:
        """Abort the stream; the reader raises PipelineError from ``exc``."""
        if self._error is not None:
            return
        self._error = exc
        self._closed = True
        # Queued data will never be uploaded, so drop it to make room for
        # the wake-up sentinel.
        while self._queue.full():
            self._queue.get_nowait()
        self._queue.put_nowait(None)

    def _raise_if_failed(self) -> None:
        if self._error is not None:
            raise PipelineError(
                f"archive stream aborted: {self._error}",
                details={"cause": type(self._error).__name__},
            ) from self._error

    async def read(self, size: int = -1) -> bytes:
        """
        Return up to ``size`` bytes (one queued chunk when ``size`` < 0).

        Returns b"" only after close().
        """
        self._raise_if_failed()
        if not self._pending:
            if self._eof:
                return b""
            chunk = await self._queue.get()
            self._raise_if_failed()
            if chunk is None:
                self._eof = True
                return b""
            self._pending = chunk

        if size < 0 or size >= len(self._pending):
            data, self._pending = self._pending, b""
        else:
            data, self._pending = self._pending[:size], self._pending[size:]
        return data


class CountingReader:
    """
    Pass-through reader that counts the bytes handed to its consumer.

    It adds no buffering: every read goes straight to the wrapped source.
    """

    def __init__(self, source: AsyncReader):
        self._source = source
        self.read_bytes = 0

    async def read(self, size: int = -1) -> bytes:
        data = await self._source.read(size)
        self.read_bytes += len(data)
        return data
