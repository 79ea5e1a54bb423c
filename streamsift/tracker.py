"""At-most-once, index-ordered emission of completed items."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from .completeness import clean_item, item_identity
from .config import ItemTypeConfig
from .types import StructuredItemEvent

logger = logging.getLogger("streamsift.tracker")


class EmissionTracker:
    """Remembers what has been sent for one target array.

    ``reconcile`` turns classifier output into ``structured_data`` events with
    strictly increasing indices. While streaming, only the contiguous run right
    after the last emitted index is released, so an item that is still
    incomplete holds back its successors until it finishes. The final pass
    releases every remaining complete item since no later pass can fill a gap.
    """

    __slots__ = ("item_type", "_emitted_keys", "_highest_safe_index")

    def __init__(self, item_type: ItemTypeConfig) -> None:
        self.item_type = item_type
        self._emitted_keys: set[str] = set()
        self._highest_safe_index = -1

    @property
    def field(self) -> str:
        return self.item_type.field

    @property
    def highest_safe_index(self) -> int:
        return self._highest_safe_index

    @property
    def next_index(self) -> int:
        return self._highest_safe_index + 1

    @property
    def emitted_keys(self) -> frozenset[str]:
        return frozenset(self._emitted_keys)

    @property
    def emitted_count(self) -> int:
        return len(self._emitted_keys)

    def key_for(self, index: int, item: Any) -> str:
        return f"{self.field}-{index}-{item_identity(item, self.item_type)}"

    def reconcile(
        self,
        newly_complete: Iterable[tuple[int, Any]],
        *,
        final: bool = False,
    ) -> list[StructuredItemEvent]:
        events: list[StructuredItemEvent] = []
        for index, item in sorted(newly_complete, key=lambda pair: pair[0]):
            if index <= self._highest_safe_index:
                continue
            key = self.key_for(index, item)
            if key in self._emitted_keys:
                continue
            if not final and index != self._highest_safe_index + 1:
                logger.debug(
                    "structured_item_held",
                    extra={"field": self.field, "index": index, "waiting_for": self.next_index},
                )
                break
            events.append(
                StructuredItemEvent(field=self.field, index=index, data=clean_item(item, self.item_type))
            )
            self._emitted_keys.add(key)
            self._highest_safe_index = index
        return events


__all__ = ["EmissionTracker"]
