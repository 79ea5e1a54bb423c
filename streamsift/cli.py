"""streamsift command-line interface."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

import click

from .config import StreamConfig, StreamingMode, StreamSchema, load_schema
from .controller import StreamController
from .errors import SchemaError
from .parser import parse_complete
from .sources import ChannelTokenSource
from .sse import decode_frames
from .types import StreamOutcome


def split_deltas(text: str, chunk_size: int) -> list[str]:
    return [text[start : start + chunk_size] for start in range(0, len(text), chunk_size)]


def summarize_event(event: dict[str, Any]) -> str:
    kind = event.get("type")
    if kind == "structured_data":
        return f"structured_data {event['field']}[{event['index']}] {json.dumps(event['data'], ensure_ascii=False)}"
    if kind == "structured_complete":
        return f"structured_complete stats={json.dumps(event['stats'])}"
    if kind == "text_chunk":
        return f"text_chunk {event['content']!r}"
    if kind == "completion":
        return f"completion {json.dumps(event['final_data'], ensure_ascii=False)[:200]}"
    if kind == "error":
        return f"error [{event['code']}] {event['error']} ({event['recovery']})"
    return json.dumps(event, ensure_ascii=False)


class _EchoSink:
    """Writes frames to stdout as they are produced."""

    def __init__(self, *, summary: bool) -> None:
        self._summary = summary
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def write(self, frame: bytes) -> None:
        if self._summary:
            for event in decode_frames([frame]):
                click.echo(summarize_event(event))
        else:
            click.echo(frame.decode(), nl=False)

    async def close(self) -> None:
        self._closed = True


async def replay_output(
    text: str,
    *,
    schema: StreamSchema | None,
    mode: StreamingMode,
    chunk_size: int,
    config: StreamConfig,
    summary: bool,
) -> StreamOutcome:
    source = ChannelTokenSource()
    for delta in split_deltas(text, chunk_size):
        source.push(delta)
    final_value = parse_complete(text)
    source.finish(text if final_value is None else final_value)
    controller = StreamController(
        source,
        _EchoSink(summary=summary),
        schema=schema,
        mode=mode,
        config=config,
    )
    return await controller.run()


@click.group()
@click.version_option(package_name="streamsift")
def app() -> None:
    """streamsift CLI - replay and inspect structured output streams."""


@app.command()
@click.argument("output_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--schema",
    "schema_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="YAML file describing the target arrays.",
)
@click.option(
    "--mode",
    type=click.Choice([mode.value for mode in StreamingMode]),
    default=StreamingMode.AUTO.value,
    show_default=True,
)
@click.option("--chunk-size", type=click.IntRange(min=1), default=8, show_default=True, help="Characters per delta.")
@click.option("--reparse-every", type=click.IntRange(min=1), default=50, show_default=True)
@click.option("--timeout", "timeout_s", type=click.FloatRange(min=0, min_open=True), default=30.0, show_default=True)
@click.option("--summary", is_flag=True, help="Print one line per event instead of raw SSE frames.")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging on stderr.")
def replay(
    output_file: Path,
    schema_path: Path | None,
    mode: str,
    chunk_size: int,
    reparse_every: int,
    timeout_s: float,
    summary: bool,
    verbose: bool,
) -> None:
    """Replay a recorded model output as a delta stream and print the events."""
    if verbose:
        logging.basicConfig(level=logging.DEBUG, stream=sys.stderr)

    schema: StreamSchema | None = None
    if schema_path is not None:
        try:
            schema = load_schema(schema_path)
        except SchemaError as e:
            click.echo(f"✗ {e}", err=True)
            sys.exit(1)

    config = StreamConfig(timeout_s=timeout_s, reparse_every=reparse_every)
    outcome = asyncio.run(
        replay_output(
            output_file.read_text(encoding="utf-8"),
            schema=schema,
            mode=StreamingMode(mode),
            chunk_size=chunk_size,
            config=config,
            summary=summary,
        )
    )
    if not outcome.ok:
        click.echo(f"✗ stream {outcome.status}: {outcome.error}", err=True)
        sys.exit(1)


__all__ = ["app", "replay_output", "split_deltas", "summarize_event"]
