"""Append-only text buffer for upstream deltas."""

from __future__ import annotations


class BufferAccumulator:
    """Concatenates deltas and counts how many arrived."""

    __slots__ = ("_parts", "_text", "_length", "_delta_count")

    def __init__(self) -> None:
        self._parts: list[str] = []
        self._text: str | None = ""
        self._length = 0
        self._delta_count = 0

    def append(self, delta: str) -> None:
        self._parts.append(delta)
        self._length += len(delta)
        self._delta_count += 1
        self._text = None

    @property
    def text(self) -> str:
        # Joined lazily; reparses happen far less often than appends.
        if self._text is None:
            self._text = "".join(self._parts)
            self._parts = [self._text]
        return self._text

    @property
    def delta_count(self) -> int:
        return self._delta_count

    @property
    def length(self) -> int:
        return self._length

    def preview(self, head: int = 500, tail: int = 100) -> tuple[str, str | None]:
        """Return the first ``head`` chars and, for long buffers, the last ``tail``."""

        text = self.text
        suffix = text[-tail:] if tail and len(text) > head else None
        return text[:head], suffix


__all__ = ["BufferAccumulator"]
