"""Server-Sent-Events framing for stream events."""

from __future__ import annotations

import json
from collections.abc import AsyncIterable, AsyncIterator, Iterable
from typing import Any

from pydantic import BaseModel

SSE_HEADERS: dict[str, str] = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


def encode_event(event: BaseModel) -> bytes:
    """Encode one event as a ``data: <json>\\n\\n`` frame.

    JSON escaping keeps newlines inside payload strings from ending the frame.
    """

    payload = event.model_dump(mode="json", by_alias=True)
    data = json.dumps(payload, ensure_ascii=False, separators=(",", ":"))
    return f"data: {data}\n\n".encode()


def _parse_block(block: list[str]) -> dict[str, Any] | None:
    data_lines = [entry[5:].lstrip() for entry in block if entry.startswith("data:")]
    if not data_lines:
        return None
    return json.loads("\n".join(data_lines))


def decode_frames(chunks: Iterable[bytes | str]) -> list[dict[str, Any]]:
    """Decode SSE bytes (any chunking) back into event payloads."""

    text = "".join(chunk.decode() if isinstance(chunk, (bytes, bytearray)) else chunk for chunk in chunks)
    events: list[dict[str, Any]] = []
    for raw_block in text.split("\n\n"):
        payload = _parse_block([line for line in raw_block.split("\n") if line])
        if payload is not None:
            events.append(payload)
    return events


async def aiter_events(lines: AsyncIterable[str]) -> AsyncIterator[dict[str, Any]]:
    """Yield event payloads from an async iterator of SSE lines."""

    block: list[str] = []
    async for line in lines:
        if line == "":
            payload = _parse_block(block)
            block = []
            if payload is not None:
                yield payload
            continue
        block.append(line)
    payload = _parse_block(block)
    if payload is not None:
        yield payload


__all__ = ["SSE_HEADERS", "aiter_events", "decode_frames", "encode_event"]
