"""Upstream token sources.

A source yields text deltas and, once the delta sequence has ended, resolves a
single authoritative final value. ``aclose`` releases upstream work early.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator, Callable, Mapping, Sequence
from typing import Any, Protocol

from .errors import FinalPayloadError, UpstreamError

logger = logging.getLogger("streamsift.sources")

_END = object()


class TokenSource(Protocol):
    def deltas(self) -> AsyncIterator[str]: ...

    async def final_output(self) -> Any: ...

    async def aclose(self) -> None: ...


class _Failure:
    __slots__ = ("exc",)

    def __init__(self, exc: BaseException) -> None:
        self.exc = exc


class ChannelTokenSource:
    """Bridge callback-style producers to the async source interface.

    Producers call :meth:`push` for each delta and then exactly one of
    :meth:`finish` or :meth:`fail`. ``on_close`` runs when the consumer releases
    the source, so the producer can stop generating.
    """

    def __init__(self, *, on_close: Callable[[], None] | None = None) -> None:
        self._queue: asyncio.Queue[str | object] = asyncio.Queue()
        self._done = asyncio.Event()
        self._final: Any = None
        self._error: BaseException | None = None
        self._closed = False
        self._on_close = on_close

    @property
    def closed(self) -> bool:
        return self._closed

    def push(self, delta: str) -> None:
        if self._closed or self._done.is_set():
            return
        self._queue.put_nowait(delta)

    def finish(self, final: Any = None) -> None:
        if self._done.is_set():
            return
        self._final = final
        self._done.set()
        self._queue.put_nowait(_END)

    def fail(self, exc: BaseException) -> None:
        if self._done.is_set():
            return
        self._error = exc
        self._done.set()
        self._queue.put_nowait(_Failure(exc))

    async def deltas(self) -> AsyncIterator[str]:
        while True:
            item = await self._queue.get()
            if item is _END:
                return
            if isinstance(item, _Failure):
                raise item.exc
            if isinstance(item, str):
                yield item

    async def final_output(self) -> Any:
        await self._done.wait()
        if self._error is not None:
            raise self._error
        return self._final

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        if not self._done.is_set():
            self.fail(UpstreamError("Token source was closed before completion"))
        if self._on_close is not None:
            self._on_close()


class LiteLLMTokenSource:
    """Stream a chat completion through LiteLLM.

    The final value is the decoded JSON document when ``response_format`` is
    set, otherwise the concatenated text.
    """

    def __init__(
        self,
        llm: str | Mapping[str, Any],
        messages: Sequence[Mapping[str, str]],
        *,
        response_format: Mapping[str, Any] | None = None,
        temperature: float = 0.0,
    ) -> None:
        self._llm = llm
        self._messages = list(messages)
        self._response_format = response_format
        self._temperature = temperature
        self._parts: list[str] = []
        self._finished = False
        self._stream: Any = None

    def _params(self) -> dict[str, Any]:
        params: dict[str, Any]
        if isinstance(self._llm, str):
            params = {"model": self._llm}
        else:
            params = dict(self._llm)
        params.setdefault("temperature", self._temperature)
        params["messages"] = list(self._messages)
        params["stream"] = True
        if self._response_format is not None:
            params["response_format"] = dict(self._response_format)
        return params

    async def deltas(self) -> AsyncIterator[str]:
        try:
            import litellm
        except ModuleNotFoundError as exc:  # pragma: no cover - import guard
            raise RuntimeError(
                "LiteLLM is not installed. Install streamsift[litellm] or provide a custom token source."
            ) from exc

        try:
            self._stream = await litellm.acompletion(**self._params())
            async for chunk in self._stream:
                if not chunk.choices:
                    continue
                content = chunk.choices[0].delta.content
                if content:
                    self._parts.append(content)
                    yield content
        except UpstreamError:
            raise
        except Exception as exc:
            logger.warning("llm_stream_failed", extra={"error": str(exc)})
            raise UpstreamError(f"LLM stream failed: {exc}") from exc
        self._finished = True

    async def final_output(self) -> Any:
        if not self._finished:
            raise UpstreamError("LLM stream has not finished")
        text = "".join(self._parts)
        if self._response_format is None:
            return text
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise FinalPayloadError(f"LLM returned invalid JSON: {exc}") from exc

    async def aclose(self) -> None:
        close = getattr(self._stream, "aclose", None)
        if close is not None:
            await close()


__all__ = ["ChannelTokenSource", "LiteLLMTokenSource", "TokenSource"]
