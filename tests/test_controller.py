"""End-to-end behaviour of the stream controller."""

from __future__ import annotations

import asyncio
import json
from contextlib import aclosing

import pytest

from streamsift import StreamConfig, StreamController, stream_events
from streamsift.config import ItemTypeConfig, SessionMode, StreamSchema
from streamsift.session import SessionState
from streamsift.sse import decode_frames

from .stubs import RecordingSink, ScriptedSource

FIRST = '{"data":{"items":[{"id":"1","name":"Alpha ok value"}'
SECOND = ',{"id":"2","name":"Beta ok value"}]}}'


def _structured_indices(sink: RecordingSink) -> list[int]:
    return [event["index"] for event in sink.events() if event["type"] == "structured_data"]


@pytest.mark.asyncio
async def test_two_deltas_emit_two_items_then_completion(items_schema: StreamSchema) -> None:
    source = ScriptedSource([FIRST, SECOND], final=json.loads(FIRST + SECOND))
    sink = RecordingSink()

    outcome = await StreamController(source, sink, schema=items_schema).run()

    assert sink.types() == ["structured_data", "structured_data", "structured_complete"]
    assert _structured_indices(sink) == [0, 1]
    events = sink.events()
    assert events[0]["field"] == "items"
    assert events[0]["data"] == {"id": "1", "name": "Alpha ok value"}
    assert events[1]["data"] == {"id": "2", "name": "Beta ok value"}
    complete = events[-1]
    assert complete["data"] == json.loads(FIRST + SECOND)
    assert complete["stats"] == {
        "totalChunksProcessed": 2,
        "totalItemsSent": 2,
        "finalBufferLength": len(FIRST + SECOND),
        "itemsProcessed": 2,
    }
    assert outcome.ok
    assert outcome.mode is SessionMode.STRUCTURED
    assert sink.close_calls == 1
    assert source.closed


@pytest.mark.asyncio
async def test_items_are_emitted_while_streaming(items_schema: StreamSchema) -> None:
    source = ScriptedSource([FIRST, SECOND], final=json.loads(FIRST + SECOND))
    sink = RecordingSink()
    controller = StreamController(source, sink, schema=items_schema, config=StreamConfig(reparse_every=1))

    seen_after_first: list[str] = []

    scripted_deltas = source.deltas

    async def _observing_deltas():
        async for delta in scripted_deltas():
            yield delta
            seen_after_first.extend(sink.types())
            break
        async for delta in ScriptedSource([SECOND]).deltas():
            yield delta

    source.deltas = _observing_deltas  # type: ignore[method-assign]
    await controller.run()

    assert seen_after_first == ["structured_data"]
    assert _structured_indices(sink) == [0, 1]


@pytest.mark.asyncio
async def test_truncated_item_is_only_emitted_from_final_payload(items_schema: StreamSchema) -> None:
    buffer = '{"data":{"items":[{"id":"1","name":"Partial..."}]}}'
    final = {"data": {"items": [{"id": "1", "name": "Partial text complete"}]}}
    source = ScriptedSource([buffer[:20], buffer[20:]], final=final)
    sink = RecordingSink()

    await StreamController(source, sink, schema=items_schema, config=StreamConfig(reparse_every=1)).run()

    events = sink.events()
    assert [event["type"] for event in events] == ["structured_data", "structured_complete"]
    assert events[0]["index"] == 0
    assert events[0]["data"]["name"] == "Partial text complete"


@pytest.mark.asyncio
async def test_upstream_failure_after_one_item(items_schema: StreamSchema) -> None:
    source = ScriptedSource(
        [FIRST, ',{"id":"2","name":"Beta', " never arrives"],
        fail_after=2,
        error=RuntimeError("model connection reset"),
    )
    sink = RecordingSink()

    outcome = await StreamController(
        source,
        sink,
        schema=items_schema,
        config=StreamConfig(reparse_every=1),
        trace_id="trace-abc",
    ).run()

    assert sink.types() == ["structured_data", "error"]
    error = sink.events()[-1]
    assert error["error"] == "model connection reset"
    assert error["code"] == "upstream"
    assert error["mode"] == "structured"
    assert error["trace_id"] == "trace-abc"
    assert error["recovery"]
    assert isinstance(error["duration"], int)
    assert outcome.status == "failed"
    assert outcome.error_code == "upstream"
    assert sink.close_calls == 1
    assert not source.final_awaited


@pytest.mark.asyncio
async def test_text_mode_when_no_schema() -> None:
    source = ScriptedSource(["Hel", "lo ", "world"], final="Hello world")
    sink = RecordingSink()

    controller = StreamController(source, sink, mode="auto")
    outcome = await controller.run()

    assert controller.mode is SessionMode.TEXT
    events = sink.events()
    assert [event["type"] for event in events] == ["text_chunk", "text_chunk", "text_chunk", "completion"]
    assert [event["content"] for event in events[:3]] == ["Hel", "lo ", "world"]
    assert events[-1] == {"type": "completion", "final_data": "Hello world"}
    assert outcome.ok
    assert outcome.stats.total_chunks_processed == 3


@pytest.mark.asyncio
async def test_text_mode_completion_defaults_to_empty_list() -> None:
    sink = RecordingSink()

    await StreamController(ScriptedSource(["x"], final=None), sink, mode="text").run()

    assert sink.events()[-1] == {"type": "completion", "final_data": []}


@pytest.mark.asyncio
async def test_structured_request_without_schema_falls_back_to_text() -> None:
    sink = RecordingSink()

    controller = StreamController(ScriptedSource(["a"], final="a"), sink, mode="structured")
    await controller.run()

    assert controller.mode is SessionMode.TEXT
    assert sink.types() == ["text_chunk", "completion"]


@pytest.mark.asyncio
async def test_text_mode_overrides_schema(items_schema: StreamSchema) -> None:
    sink = RecordingSink()

    await StreamController(ScriptedSource([FIRST + SECOND]), sink, schema=items_schema, mode="text").run()

    assert sink.types() == ["text_chunk", "completion"]


@pytest.mark.asyncio
async def test_repeated_passes_do_not_duplicate_items(items_schema: StreamSchema) -> None:
    # The last delta completes the document; the periodic pass, the end-of-stream
    # pass and the final payload pass all see the same items.
    source = ScriptedSource([FIRST, SECOND], final=json.loads(FIRST + SECOND))
    sink = RecordingSink()

    await StreamController(source, sink, schema=items_schema, config=StreamConfig(reparse_every=1)).run()

    assert _structured_indices(sink) == [0, 1]


@pytest.mark.asyncio
async def test_timeout_stops_reading_and_reports_timeout(items_schema: StreamSchema) -> None:
    source = ScriptedSource([FIRST, SECOND, "]}"], stall_after=1)
    sink = RecordingSink()

    outcome = await StreamController(
        source,
        sink,
        schema=items_schema,
        config=StreamConfig(timeout_s=0.05),
    ).run()

    assert sink.types() == ["error"]
    error = sink.events()[0]
    assert error["code"] == "timeout"
    assert "timeout" in error["error"].lower()
    assert outcome.status == "timeout"
    assert source.reads == 2
    assert source.closed
    assert sink.close_calls == 1

    await asyncio.sleep(0.01)
    assert source.reads == 2


@pytest.mark.asyncio
async def test_incomplete_item_holds_back_later_items_until_final(items_schema: StreamSchema) -> None:
    document = '{"data":{"items":[{"id":"1","name":"Abc"},{"id":"2","name":"Bravo value"}]}}'
    source = ScriptedSource([document[:45], document[45:]], final=json.loads(document))
    sink = RecordingSink()
    controller = StreamController(source, sink, schema=items_schema, config=StreamConfig(reparse_every=1))

    await controller.run()

    # Item 0 never satisfies the minimum length, so item 1 is only released by
    # the final pass.
    assert sink.types() == ["structured_data", "structured_complete"]
    assert _structured_indices(sink) == [1]
    assert sink.events()[-1]["stats"]["totalItemsSent"] == 1


@pytest.mark.asyncio
async def test_sink_disconnect_stops_stream_without_error_event(items_schema: StreamSchema) -> None:
    source = ScriptedSource([FIRST, SECOND], final=json.loads(FIRST + SECOND))
    sink = RecordingSink(fail_after=1)

    outcome = await StreamController(
        source,
        sink,
        schema=items_schema,
        config=StreamConfig(reparse_every=1),
    ).run()

    assert sink.types() == ["structured_data"]
    assert outcome.status == "disconnected"
    assert sink.close_calls == 1
    assert source.closed


@pytest.mark.asyncio
async def test_missing_structured_final_payload_reports_error(items_schema: StreamSchema) -> None:
    source = ScriptedSource(["not json at all"], final=42)
    sink = RecordingSink()

    outcome = await StreamController(source, sink, schema=items_schema).run()

    assert sink.types() == ["error"]
    assert sink.events()[0]["code"] == "invalid_output"
    assert outcome.status == "failed"


@pytest.mark.asyncio
async def test_final_value_none_uses_buffer(items_schema: StreamSchema) -> None:
    source = ScriptedSource([FIRST, SECOND], final=None)
    sink = RecordingSink()

    await StreamController(source, sink, schema=items_schema).run()

    assert sink.events()[-1]["data"] == json.loads(FIRST + SECOND)


@pytest.mark.asyncio
async def test_final_output_failure_is_reported(items_schema: StreamSchema) -> None:
    source = ScriptedSource([FIRST, SECOND], final_error=RuntimeError("run aborted"))
    sink = RecordingSink()

    outcome = await StreamController(source, sink, schema=items_schema).run()

    assert sink.types() == ["structured_data", "structured_data", "error"]
    assert outcome.error == "run aborted"


@pytest.mark.asyncio
async def test_cancellation_closes_sink_and_releases_source(items_schema: StreamSchema) -> None:
    source = ScriptedSource([FIRST, SECOND], stall_after=0)
    sink = RecordingSink()
    controller = StreamController(source, sink, schema=items_schema)

    task = asyncio.create_task(controller.run())
    await asyncio.sleep(0.01)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert sink.close_calls == 1
    assert source.closed
    assert controller.session.state is SessionState.CLOSED
    assert sink.types() == []


@pytest.mark.asyncio
async def test_multiple_item_types_keep_independent_indices() -> None:
    schema = StreamSchema(
        item_types=[
            ItemTypeConfig(field="causes", id_field="cause_id", required_fields=["name"]),
            ItemTypeConfig(
                field="oils",
                path="suggestion.oils",
                id_field="oil_id",
                required_fields=["name"],
            ),
        ]
    )
    final = {
        "data": {
            "causes": [{"cause_id": "c1", "name": "Stress"}, {"cause_id": "c2", "name": "Sleep"}],
            "suggestion": {"oils": [{"oil_id": "o1", "name": "Lavender", "internal": True}]},
        }
    }
    sink = RecordingSink()

    await StreamController(ScriptedSource([json.dumps(final)], final=final), sink, schema=schema).run()

    items = [(event["field"], event["index"]) for event in sink.events() if event["type"] == "structured_data"]
    assert items == [("causes", 0), ("causes", 1), ("oils", 0)]
    oil = next(event for event in sink.events() if event.get("field") == "oils")
    assert oil["data"] == {"oil_id": "o1", "name": "Lavender"}


@pytest.mark.asyncio
async def test_stream_events_yields_frames(items_schema: StreamSchema) -> None:
    source = ScriptedSource([FIRST, SECOND], final=json.loads(FIRST + SECOND))

    frames = [frame async for frame in stream_events(source, schema=items_schema)]

    assert [event["type"] for event in decode_frames(frames)] == [
        "structured_data",
        "structured_data",
        "structured_complete",
    ]
    assert source.closed


@pytest.mark.asyncio
async def test_stream_events_consumer_leaving_cancels_run(items_schema: StreamSchema) -> None:
    source = ScriptedSource([FIRST, SECOND, "]}"], stall_after=2)

    async with aclosing(
        stream_events(source, schema=items_schema, config=StreamConfig(reparse_every=1))
    ) as frames:
        async for _frame in frames:
            break

    assert source.closed
