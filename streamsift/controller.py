"""Stream controller: drives one upstream run into one downstream sink.

The controller owns a :class:`StreamSession` and walks it through
``idle -> streaming -> finalizing -> closed``. Structured sessions accumulate
deltas, periodically reparse the buffer and emit completed array items as
``structured_data`` events, then reconcile against the final payload and emit
``structured_complete``. Text sessions relay deltas verbatim and finish with
``completion``. Every path ends with exactly one sink close, and no exception
other than task cancellation escapes :meth:`StreamController.run`.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Sequence

from pydantic import BaseModel

from .completeness import CompletenessPredicate
from .config import SessionMode, StreamConfig, StreamingMode, StreamSchema, resolve_mode
from .errors import SinkClosedError, StreamTimeoutError, classify_error
from .finalizer import finalize
from .relay import relay_text
from .session import SessionState, StreamSession
from .sinks import EventSink, QueueSink
from .sources import TokenSource
from .sse import encode_event
from .types import ErrorEvent, StreamOutcome, StructuredItemEvent

logger = logging.getLogger("streamsift.controller")


class StreamController:
    """Runs one streaming session from ``source`` into ``sink``."""

    def __init__(
        self,
        source: TokenSource,
        sink: EventSink,
        *,
        schema: StreamSchema | None = None,
        mode: StreamingMode | str = StreamingMode.AUTO,
        config: StreamConfig | None = None,
        predicate: CompletenessPredicate | None = None,
        trace_id: str | None = None,
    ) -> None:
        self._source = source
        self._sink = sink
        self._config = config or StreamConfig()
        self.session = StreamSession(
            resolve_mode(mode, schema),
            schema=schema,
            predicate=predicate,
            trace_id=trace_id,
            partial_strings=self._config.partial_strings,
        )

    @property
    def mode(self) -> SessionMode:
        return self.session.mode

    @property
    def trace_id(self) -> str:
        return self.session.trace_id

    async def run(self) -> StreamOutcome:
        session = self.session
        status = "completed"
        error_message: str | None = None
        error_code: str | None = None
        logger.info(
            "stream_started",
            extra={"trace_id": session.trace_id, "mode": session.mode.value},
        )
        try:
            await self._run_with_deadline()
        except SinkClosedError as exc:
            status, error_message, error_code = "disconnected", exc.message, exc.code
            logger.warning(
                "sink_write_failed",
                extra={"trace_id": session.trace_id, "error": exc.message, "state": session.state.value},
            )
        except asyncio.CancelledError:
            status = "cancelled"
            logger.info("stream_cancelled", extra={"trace_id": session.trace_id})
            raise
        except Exception as exc:
            error_code, error_message, recovery = classify_error(exc)
            status = "timeout" if isinstance(exc, StreamTimeoutError) else "failed"
            logger.error(
                "stream_failed",
                extra={
                    "trace_id": session.trace_id,
                    "mode": session.mode.value,
                    "code": error_code,
                    "error": error_message,
                    "duration_ms": session.elapsed_ms(),
                },
            )
            await self._emit_error(error_code, error_message, recovery)
        finally:
            await self._shutdown()

        outcome = StreamOutcome(
            trace_id=session.trace_id,
            mode=session.mode,
            status=status,
            stats=session.stats(),
            duration_ms=session.elapsed_ms(),
            error=error_message,
            error_code=error_code,
        )
        if outcome.ok:
            logger.info(
                "stream_completed",
                extra={
                    "trace_id": session.trace_id,
                    "mode": session.mode.value,
                    "duration_ms": outcome.duration_ms,
                    "items_sent": outcome.stats.total_items_sent,
                },
            )
        return outcome

    async def _run_with_deadline(self) -> None:
        deadline = asyncio.timeout(self._config.timeout_s)
        try:
            async with deadline:
                await self._drive()
        except TimeoutError as exc:
            if not deadline.expired():
                raise
            raise StreamTimeoutError(self._config.timeout_s or 0.0) from exc

    async def _drive(self) -> None:
        self.session.transition(SessionState.STREAMING)
        if self.session.mode is SessionMode.STRUCTURED:
            await self._stream_structured()
        else:
            await self._stream_text()

    async def _stream_structured(self) -> None:
        session = self.session
        reparse_every = self._config.reparse_every
        progress_every = self._config.progress_log_every

        async for delta in self._source.deltas():
            session.buffer.append(delta)
            count = session.delta_count
            if count % reparse_every == 0:
                await self._emit_items(session.reparse())
            if count % progress_every == 0:
                self._log_progress()

        await self._emit_items(session.reparse())
        logger.debug(
            "final_buffer",
            extra={"trace_id": session.trace_id, "buffer_length": session.buffer.length},
        )

        session.transition(SessionState.FINALIZING)
        final_value = await self._source.final_output()
        finalization = finalize(session, final_value)
        await self._emit_items(finalization.items)
        await self._write(finalization.complete(session))

    async def _stream_text(self) -> None:
        completion = await relay_text(self.session, self._source, self._write)
        self.session.transition(SessionState.FINALIZING)
        await self._write(completion)

    async def _emit_items(self, events: Sequence[StructuredItemEvent]) -> None:
        for event in events:
            await self._write(event)
            self.session.items_sent += 1
            logger.debug(
                "structured_item_sent",
                extra={
                    "trace_id": self.session.trace_id,
                    "field": event.field,
                    "index": event.index,
                    "total_sent": self.session.items_sent,
                },
            )

    async def _write(self, event: BaseModel) -> None:
        if self.session.closed or self._sink.closed:
            raise SinkClosedError("Event sink is closed")
        frame = encode_event(event)
        try:
            await self._sink.write(frame)
        except SinkClosedError:
            raise
        except Exception as exc:
            raise SinkClosedError(f"Failed to write event: {exc}") from exc

    async def _emit_error(self, code: str, message: str, recovery: str) -> None:
        session = self.session
        if session.closed or self._sink.closed:
            return
        event = ErrorEvent(
            error=message,
            code=code,
            mode=session.mode,
            duration=session.elapsed_ms(),
            trace_id=session.trace_id,
            recovery=recovery,
        )
        try:
            await self._sink.write(encode_event(event))
        except Exception as exc:
            logger.error(
                "error_event_failed",
                extra={"trace_id": session.trace_id, "error": str(exc)},
            )

    async def _shutdown(self) -> None:
        try:
            await self._source.aclose()
        except Exception as exc:
            logger.warning(
                "source_close_failed",
                extra={"trace_id": self.session.trace_id, "error": str(exc)},
            )
        if self.session.closed:
            return
        self.session.transition(SessionState.CLOSED)
        try:
            await self._sink.close()
        except Exception as exc:
            logger.error(
                "sink_close_failed",
                extra={"trace_id": self.session.trace_id, "error": str(exc)},
            )

    def _log_progress(self) -> None:
        session = self.session
        logger.info(
            "stream_progress",
            extra={
                "trace_id": session.trace_id,
                "buffer_length": session.buffer.length,
                "chunks_processed": session.delta_count,
                "items_sent": session.items_sent,
            },
        )
        if logger.isEnabledFor(logging.DEBUG):
            head, tail = session.buffer.preview(
                self._config.snapshot_head_chars,
                self._config.snapshot_tail_chars,
            )
            logger.debug(
                "buffer_snapshot",
                extra={
                    "trace_id": session.trace_id,
                    "chunk_count": session.delta_count,
                    "buffer_preview": head,
                    "buffer_suffix": tail,
                },
            )


async def stream_events(
    source: TokenSource,
    *,
    schema: StreamSchema | None = None,
    mode: StreamingMode | str = StreamingMode.AUTO,
    config: StreamConfig | None = None,
    predicate: CompletenessPredicate | None = None,
    trace_id: str | None = None,
) -> AsyncIterator[bytes]:
    """Run a controller in the background and yield its SSE frames.

    Leaving the iterator early cancels the run and releases the source.
    """

    sink = QueueSink()
    controller = StreamController(
        source,
        sink,
        schema=schema,
        mode=mode,
        config=config,
        predicate=predicate,
        trace_id=trace_id,
    )
    task = asyncio.create_task(controller.run())
    try:
        async for frame in sink.frames():
            yield frame
    finally:
        if not task.done():
            task.cancel()
        await asyncio.gather(task, return_exceptions=True)


__all__ = ["StreamController", "stream_events"]
