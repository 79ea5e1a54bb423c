"""Verbatim text relay for runs without a structured schema."""

from __future__ import annotations

from collections.abc import Awaitable, Callable

from pydantic import BaseModel

from .session import StreamSession
from .sources import TokenSource
from .types import CompletionEvent, TextChunkEvent


async def relay_text(
    session: StreamSession,
    source: TokenSource,
    emit: Callable[[BaseModel], Awaitable[None]],
) -> CompletionEvent:
    """Forward every delta as a ``text_chunk`` and build the completion event.

    The caller writes the returned event after any bookkeeping of its own.
    """

    async for delta in source.deltas():
        session.buffer.append(delta)
        await emit(TextChunkEvent(content=delta))
    final_value = await source.final_output()
    return CompletionEvent(final_data=[] if final_value is None else final_value)


__all__ = ["relay_text"]
