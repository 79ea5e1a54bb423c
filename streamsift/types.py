"""Typed wire events and run summaries for streamsift."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .config import SessionMode


def utc_timestamp() -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a ``Z`` suffix."""

    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class StreamStats(BaseModel):
    total_chunks_processed: int = 0
    total_items_sent: int = 0
    final_buffer_length: int = 0
    items_processed: int = 0

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class TextChunkEvent(BaseModel):
    type: Literal["text_chunk"] = "text_chunk"
    content: str

    model_config = ConfigDict(frozen=True)


class StructuredItemEvent(BaseModel):
    type: Literal["structured_data"] = "structured_data"
    field: str
    index: int = Field(ge=0)
    data: dict[str, Any]
    timestamp: str = Field(default_factory=utc_timestamp)

    model_config = ConfigDict(frozen=True)


class StructuredCompleteEvent(BaseModel):
    type: Literal["structured_complete"] = "structured_complete"
    data: dict[str, Any]
    stats: StreamStats
    timestamp: str = Field(default_factory=utc_timestamp)

    model_config = ConfigDict(frozen=True)


class CompletionEvent(BaseModel):
    type: Literal["completion"] = "completion"
    final_data: Any = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)


class ErrorEvent(BaseModel):
    type: Literal["error"] = "error"
    error: str
    code: str
    mode: SessionMode
    duration: int = Field(ge=0, description="Milliseconds since the stream started")
    trace_id: str
    timestamp: str = Field(default_factory=utc_timestamp)
    recovery: str

    model_config = ConfigDict(frozen=True)


StreamEvent = Annotated[
    TextChunkEvent | StructuredItemEvent | StructuredCompleteEvent | CompletionEvent | ErrorEvent,
    Field(discriminator="type"),
]


class StreamOutcome(BaseModel):
    """Summary returned by :meth:`StreamController.run`."""

    trace_id: str
    mode: SessionMode
    status: Literal["completed", "failed", "timeout", "disconnected", "cancelled"]
    stats: StreamStats
    duration_ms: int = 0
    error: str | None = None
    error_code: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == "completed"


__all__ = [
    "CompletionEvent",
    "ErrorEvent",
    "StreamEvent",
    "StreamOutcome",
    "StreamStats",
    "StructuredCompleteEvent",
    "StructuredItemEvent",
    "TextChunkEvent",
    "utc_timestamp",
]
