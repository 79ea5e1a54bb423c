"""Downstream event sinks."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from typing import Protocol

from .errors import SinkClosedError

SSESentinel = object()


class EventSink(Protocol):
    """Append-only, single-writer byte channel that either side may close."""

    @property
    def closed(self) -> bool: ...

    async def write(self, frame: bytes) -> None: ...

    async def close(self) -> None: ...


class QueueSink:
    """In-memory sink drained by :meth:`frames`.

    The consumer leaving :meth:`frames` early (client disconnect, cancellation)
    marks the sink closed; later writes raise :class:`SinkClosedError`.
    """

    def __init__(self, maxsize: int = 0) -> None:
        self._queue: asyncio.Queue[bytes | object] = asyncio.Queue(maxsize=maxsize)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def write(self, frame: bytes) -> None:
        if self._closed:
            raise SinkClosedError("Event sink is closed")
        await self._queue.put(frame)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._queue.put_nowait(SSESentinel)
        except asyncio.QueueFull:
            # Consumer is gone or lagging; it stops on the closed flag instead.
            pass

    async def frames(self) -> AsyncIterator[bytes]:
        try:
            while True:
                if self._closed and self._queue.empty():
                    break
                item = await self._queue.get()
                if item is SSESentinel:
                    break
                if isinstance(item, bytes):
                    yield item
        finally:
            self._closed = True


__all__ = ["EventSink", "QueueSink", "SSESentinel"]
