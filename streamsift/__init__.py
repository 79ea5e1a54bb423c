"""Public package surface for streamsift."""

from __future__ import annotations

from .accumulator import BufferAccumulator
from .completeness import (
    CompletenessPredicate,
    HeuristicCompleteness,
    SentinelCompleteness,
    classify,
    clean_item,
    extract_items,
)
from .config import (
    ItemTypeConfig,
    SessionMode,
    StreamConfig,
    StreamingMode,
    StreamSchema,
    load_schema,
    resolve_mode,
)
from .controller import StreamController, stream_events
from .errors import (
    FinalPayloadError,
    SchemaError,
    SinkClosedError,
    StreamError,
    StreamTimeoutError,
    UpstreamError,
)
from .finalizer import Finalization, coerce_final_payload, finalize
from .parser import try_parse
from .relay import relay_text
from .session import SessionState, StreamSession
from .sinks import EventSink, QueueSink
from .sources import ChannelTokenSource, LiteLLMTokenSource, TokenSource
from .sse import decode_frames, encode_event
from .tracker import EmissionTracker
from .types import (
    CompletionEvent,
    ErrorEvent,
    StreamEvent,
    StreamOutcome,
    StreamStats,
    StructuredCompleteEvent,
    StructuredItemEvent,
    TextChunkEvent,
)

__all__ = [
    "__version__",
    "BufferAccumulator",
    "ChannelTokenSource",
    "CompletenessPredicate",
    "CompletionEvent",
    "EmissionTracker",
    "ErrorEvent",
    "EventSink",
    "Finalization",
    "FinalPayloadError",
    "HeuristicCompleteness",
    "ItemTypeConfig",
    "LiteLLMTokenSource",
    "QueueSink",
    "SchemaError",
    "SentinelCompleteness",
    "SessionMode",
    "SessionState",
    "SinkClosedError",
    "StreamConfig",
    "StreamController",
    "StreamError",
    "StreamEvent",
    "StreamOutcome",
    "StreamSchema",
    "StreamSession",
    "StreamStats",
    "StreamTimeoutError",
    "StreamingMode",
    "StructuredCompleteEvent",
    "StructuredItemEvent",
    "TextChunkEvent",
    "TokenSource",
    "UpstreamError",
    "classify",
    "clean_item",
    "coerce_final_payload",
    "decode_frames",
    "encode_event",
    "extract_items",
    "finalize",
    "load_schema",
    "relay_text",
    "resolve_mode",
    "stream_events",
    "try_parse",
]

__version__ = "0.1.0"
