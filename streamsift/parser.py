"""Best-effort parsing of a JSON document that is still being generated."""

from __future__ import annotations

from typing import Any

from jiter import from_json


def try_parse(buffer: str, *, partial_strings: bool = True) -> Any | None:
    """Parse the longest meaningful value from a possibly truncated JSON prefix.

    Unterminated arrays and objects hold what has been read. An unterminated
    trailing string keeps the text received so far, or is dropped entirely
    when ``partial_strings`` is false. Returns ``None`` when nothing usable can
    be derived yet (empty buffer, leading garbage, a cut-off literal). That is
    the normal state early in a stream, not an error.
    """

    if not buffer or buffer.isspace():
        return None
    try:
        return from_json(buffer.encode(), partial_mode="trailing-strings" if partial_strings else "on")
    except ValueError:
        return None


def parse_complete(text: str) -> Any | None:
    """Strictly parse a finished JSON document; ``None`` when it is not valid."""

    if not text or text.isspace():
        return None
    try:
        return from_json(text.encode())
    except ValueError:
        return None


def get_path(value: Any, path: str | None) -> Any:
    """Resolve a dotted ``path`` inside nested mappings; ``None`` when missing."""

    if not path:
        return value
    current = value
    for key in path.split("."):
        if not isinstance(current, dict) or key not in current:
            return None
        current = current[key]
    return current


def set_path(target: dict[str, Any], path: str, value: Any) -> None:
    keys = path.split(".")
    current = target
    for key in keys[:-1]:
        nested = current.get(key)
        if not isinstance(nested, dict):
            nested = {}
            current[key] = nested
        current = nested
    current[keys[-1]] = value


__all__ = ["get_path", "parse_complete", "set_path", "try_parse"]
