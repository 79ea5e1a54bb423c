"""Decide which array items are safe to emit while the document is still growing."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, Protocol

from .config import ItemTypeConfig, StreamSchema
from .parser import get_path, set_path

TRUNCATION_MARKERS: tuple[str, ...] = ("...", "…")


class CompletenessPredicate(Protocol):
    """Strategy deciding whether one item has finished generating."""

    def is_complete(self, item: Any, item_type: ItemTypeConfig) -> bool:
        """Return ``True`` when ``item`` can be emitted."""


class HeuristicCompleteness:
    """Content heuristics: required fields non-empty, long enough, not cut off.

    A string that ends in a truncation marker is treated as mid-generation even
    if it meets the minimum length. Short or ellipsis-ending values that are
    legitimately final are rejected too; pass a different predicate for those
    schemas.
    """

    __slots__ = ("_markers",)

    def __init__(self, truncation_markers: Sequence[str] = TRUNCATION_MARKERS) -> None:
        self._markers = tuple(marker for marker in truncation_markers if marker)

    def is_complete(self, item: Any, item_type: ItemTypeConfig) -> bool:
        if not isinstance(item, Mapping):
            return False
        if not get_path(item, item_type.id_field):
            return False
        return all(
            self._field_complete(get_path(item, name), item_type.min_length(name))
            for name in item_type.required_fields
        )

    def _field_complete(self, value: Any, min_length: int) -> bool:
        if value is None:
            return False
        if isinstance(value, str):
            stripped = value.rstrip()
            if not stripped or len(stripped) < min_length:
                return False
            return not stripped.endswith(self._markers)
        if isinstance(value, (list, tuple, Mapping)):
            return len(value) > 0
        return True


class SentinelCompleteness:
    """Trust an explicit per-item flag set by the upstream model."""

    __slots__ = ("flag_field",)

    def __init__(self, flag_field: str = "_complete") -> None:
        self.flag_field = flag_field

    def is_complete(self, item: Any, item_type: ItemTypeConfig) -> bool:
        if not isinstance(item, Mapping):
            return False
        if not get_path(item, item_type.id_field):
            return False
        return get_path(item, self.flag_field) is True


def extract_items(candidate: Any, schema: StreamSchema, item_type: ItemTypeConfig) -> list[Any]:
    """Locate the target array for ``item_type`` inside a parsed candidate."""

    container = get_path(candidate, schema.root_path)
    value = get_path(container, item_type.items_path)
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def classify(
    items: Sequence[Any],
    item_type: ItemTypeConfig,
    *,
    start: int = 0,
    predicate: CompletenessPredicate | None = None,
) -> list[tuple[int, Any]]:
    """Return ``(index, item)`` pairs at or after ``start`` that are complete.

    Every remaining item is evaluated on its own; an incomplete item does not
    hide complete ones after it.
    """

    check = predicate or HeuristicCompleteness()
    return [
        (index, items[index])
        for index in range(max(start, 0), len(items))
        if check.is_complete(items[index], item_type)
    ]


def item_identity(item: Any, item_type: ItemTypeConfig) -> str:
    value = get_path(item, item_type.id_field)
    return "unknown" if value in (None, "") else str(value)


def clean_item(item: Mapping[str, Any], item_type: ItemTypeConfig) -> dict[str, Any]:
    """Project an item onto its configured fields for emission.

    Keeps the id, required and optional fields only. Required strings are
    whitespace-trimmed; optional fields are included when not null.
    """

    cleaned: dict[str, Any] = {}
    set_path(cleaned, item_type.id_field, get_path(item, item_type.id_field))
    for name in item_type.required_fields:
        value = get_path(item, name)
        set_path(cleaned, name, value.strip() if isinstance(value, str) else value)
    for name in item_type.optional_fields:
        value = get_path(item, name)
        if value is not None:
            set_path(cleaned, name, value)
    return cleaned


__all__ = [
    "CompletenessPredicate",
    "HeuristicCompleteness",
    "SentinelCompleteness",
    "TRUNCATION_MARKERS",
    "classify",
    "clean_item",
    "extract_items",
    "item_identity",
]
