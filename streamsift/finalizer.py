"""Reconcile the authoritative final value with what was streamed."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from .errors import FinalPayloadError
from .parser import parse_complete
from .session import StreamSession
from .types import StructuredCompleteEvent, StructuredItemEvent


@dataclass(frozen=True, slots=True)
class Finalization:
    """Events produced when a structured session finishes."""

    items: list[StructuredItemEvent]
    payload: dict[str, Any]

    def complete(self, session: StreamSession) -> StructuredCompleteEvent:
        """Build the terminal event; call after ``items`` have been written."""

        return StructuredCompleteEvent(data=self.payload, stats=session.stats())


def coerce_final_payload(final_value: Any, buffer: str) -> dict[str, Any]:
    """Turn the source's final value into the structured payload.

    A mapping is used as is; a string is parsed as JSON; ``None`` falls back to
    the accumulated buffer. Anything that does not yield a mapping is an error.
    """

    if isinstance(final_value, Mapping):
        return dict(final_value)
    if isinstance(final_value, str):
        parsed = parse_complete(final_value)
    elif final_value is None:
        parsed = parse_complete(buffer)
    else:
        raise FinalPayloadError(f"Final output has unsupported type {type(final_value).__name__}")
    if not isinstance(parsed, Mapping):
        raise FinalPayloadError("Final output is not a structured JSON object")
    return dict(parsed)


def finalize(session: StreamSession, final_value: Any) -> Finalization:
    """Run the last classification pass against the final payload.

    Items that only became complete in the final payload are emitted here, in
    index order. Already-emitted items are never revisited, even when the final
    payload changed their content.
    """

    payload = coerce_final_payload(final_value, session.buffer.text)
    items = session.reconcile(payload, final=True)
    return Finalization(items=items, payload=payload)


__all__ = ["Finalization", "coerce_final_payload", "finalize"]
