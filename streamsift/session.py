"""Per-request streaming state."""

from __future__ import annotations

import time
import uuid
from enum import Enum
from typing import Any

from .accumulator import BufferAccumulator
from .completeness import CompletenessPredicate, HeuristicCompleteness, classify, extract_items
from .config import SessionMode, StreamSchema
from .parser import try_parse
from .tracker import EmissionTracker
from .types import StreamStats, StructuredItemEvent


class SessionState(str, Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    FINALIZING = "finalizing"
    CLOSED = "closed"


_TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    SessionState.IDLE: frozenset({SessionState.STREAMING, SessionState.CLOSED}),
    SessionState.STREAMING: frozenset({SessionState.FINALIZING, SessionState.CLOSED}),
    SessionState.FINALIZING: frozenset({SessionState.CLOSED}),
    SessionState.CLOSED: frozenset(),
}


class StreamSession:
    """State owned by one stream controller for the lifetime of a request."""

    __slots__ = (
        "trace_id",
        "mode",
        "schema",
        "predicate",
        "buffer",
        "trackers",
        "state",
        "items_sent",
        "started_at",
        "partial_strings",
    )

    def __init__(
        self,
        mode: SessionMode,
        *,
        schema: StreamSchema | None = None,
        predicate: CompletenessPredicate | None = None,
        trace_id: str | None = None,
        partial_strings: bool = True,
    ) -> None:
        if mode is SessionMode.STRUCTURED and (schema is None or not schema.item_types):
            raise ValueError("Structured sessions require a schema with item types")
        self.trace_id = trace_id or f"streaming-{uuid.uuid4().hex}"
        self.mode = mode
        self.schema = schema
        self.partial_strings = partial_strings
        self.predicate: CompletenessPredicate = predicate or HeuristicCompleteness()
        self.buffer = BufferAccumulator()
        self.trackers: list[EmissionTracker] = (
            [EmissionTracker(item_type) for item_type in schema.item_types]
            if schema is not None and mode is SessionMode.STRUCTURED
            else []
        )
        self.state = SessionState.IDLE
        self.items_sent = 0
        self.started_at = time.monotonic()

    @property
    def closed(self) -> bool:
        return self.state is SessionState.CLOSED

    @property
    def delta_count(self) -> int:
        return self.buffer.delta_count

    def transition(self, state: SessionState) -> None:
        if state is self.state:
            return
        if state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Invalid session transition {self.state.value} -> {state.value}")
        self.state = state

    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self.started_at) * 1000)

    def tracker(self, field: str) -> EmissionTracker | None:
        for tracker in self.trackers:
            if tracker.field == field:
                return tracker
        return None

    def reparse(self) -> list[StructuredItemEvent]:
        """Parse the current buffer and return newly completed items."""

        candidate = try_parse(self.buffer.text, partial_strings=self.partial_strings)
        if candidate is None:
            return []
        return self.reconcile(candidate)

    def reconcile(self, candidate: Any, *, final: bool = False) -> list[StructuredItemEvent]:
        assert self.schema is not None
        events: list[StructuredItemEvent] = []
        for tracker in self.trackers:
            items = extract_items(candidate, self.schema, tracker.item_type)
            if len(items) <= tracker.next_index:
                continue
            complete = classify(items, tracker.item_type, start=tracker.next_index, predicate=self.predicate)
            events.extend(tracker.reconcile(complete, final=final))
        return events

    def emitted_key_count(self) -> int:
        return sum(tracker.emitted_count for tracker in self.trackers)

    def stats(self) -> StreamStats:
        return StreamStats(
            total_chunks_processed=self.buffer.delta_count,
            total_items_sent=self.items_sent,
            final_buffer_length=self.buffer.length,
            items_processed=self.emitted_key_count(),
        )


__all__ = ["SessionState", "StreamSession"]
