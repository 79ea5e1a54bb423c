from __future__ import annotations

import sys
import types
from typing import Any

import pytest

from streamsift.errors import FinalPayloadError, UpstreamError
from streamsift.sources import ChannelTokenSource, LiteLLMTokenSource


@pytest.mark.asyncio
async def test_channel_source_replays_pushed_deltas() -> None:
    source = ChannelTokenSource()
    source.push("Hel")
    source.push("lo")
    source.finish({"ok": True})

    deltas = [delta async for delta in source.deltas()]

    assert deltas == ["Hel", "lo"]
    assert await source.final_output() == {"ok": True}


@pytest.mark.asyncio
async def test_channel_source_propagates_failure() -> None:
    source = ChannelTokenSource()
    source.push("a")
    source.fail(RuntimeError("producer crashed"))

    received: list[str] = []
    with pytest.raises(RuntimeError, match="producer crashed"):
        async for delta in source.deltas():
            received.append(delta)

    assert received == ["a"]
    with pytest.raises(RuntimeError):
        await source.final_output()


@pytest.mark.asyncio
async def test_channel_source_close_notifies_producer() -> None:
    stopped: list[bool] = []
    source = ChannelTokenSource(on_close=lambda: stopped.append(True))

    await source.aclose()
    await source.aclose()
    source.push("ignored")

    assert stopped == [True]
    assert source.closed
    with pytest.raises(UpstreamError):
        await source.final_output()


class _Delta:
    def __init__(self, content: str | None) -> None:
        self.content = content


class _Choice:
    def __init__(self, content: str | None) -> None:
        self.delta = _Delta(content)


class _Chunk:
    def __init__(self, content: str | None) -> None:
        self.choices = [_Choice(content)] if content != "<empty>" else []


class _FakeStream:
    def __init__(self, contents: list[str | None], error: Exception | None = None) -> None:
        self._contents = contents
        self._error = error
        self.closed = False

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for content in self._contents:
            yield _Chunk(content)
        if self._error is not None:
            raise self._error

    async def aclose(self) -> None:
        self.closed = True


def _install_litellm(monkeypatch: pytest.MonkeyPatch, stream: _FakeStream) -> list[dict[str, Any]]:
    calls: list[dict[str, Any]] = []

    async def acompletion(**params: Any) -> _FakeStream:
        calls.append(params)
        return stream

    monkeypatch.setitem(sys.modules, "litellm", types.SimpleNamespace(acompletion=acompletion))
    return calls


@pytest.mark.asyncio
async def test_litellm_source_streams_json(monkeypatch: pytest.MonkeyPatch) -> None:
    stream = _FakeStream(['{"data":', None, "<empty>", '{"items":[]}}'])
    calls = _install_litellm(monkeypatch, stream)
    source = LiteLLMTokenSource(
        "openai/gpt-4o-mini",
        [{"role": "user", "content": "hi"}],
        response_format={"type": "json_object"},
    )

    deltas = [delta async for delta in source.deltas()]
    final = await source.final_output()
    await source.aclose()

    assert deltas == ['{"data":', '{"items":[]}}']
    assert final == {"data": {"items": []}}
    assert calls[0]["model"] == "openai/gpt-4o-mini"
    assert calls[0]["stream"] is True
    assert calls[0]["temperature"] == 0.0
    assert calls[0]["response_format"] == {"type": "json_object"}
    assert stream.closed


@pytest.mark.asyncio
async def test_litellm_source_text_mode(monkeypatch: pytest.MonkeyPatch) -> None:
    _install_litellm(monkeypatch, _FakeStream(["Hello ", "there"]))
    source = LiteLLMTokenSource({"model": "m", "temperature": 0.7}, [{"role": "user", "content": "hi"}])

    assert [delta async for delta in source.deltas()] == ["Hello ", "there"]
    assert await source.final_output() == "Hello there"


@pytest.mark.asyncio
async def test_litellm_source_wraps_stream_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    _install_litellm(monkeypatch, _FakeStream(["partial"], error=ConnectionError("reset by peer")))
    source = LiteLLMTokenSource("m", [{"role": "user", "content": "hi"}])

    with pytest.raises(UpstreamError, match="reset by peer"):
        async for _delta in source.deltas():
            pass

    with pytest.raises(UpstreamError):
        await source.final_output()


@pytest.mark.asyncio
async def test_litellm_source_rejects_invalid_json(monkeypatch: pytest.MonkeyPatch) -> None:
    _install_litellm(monkeypatch, _FakeStream(['{"data": ']))
    source = LiteLLMTokenSource("m", [], response_format={"type": "json_object"})

    async for _delta in source.deltas():
        pass

    with pytest.raises(FinalPayloadError):
        await source.final_output()
