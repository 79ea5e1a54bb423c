"""Configuration models for structured streaming."""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped,unused-ignore]
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .errors import SchemaError


class StreamingMode(str, Enum):
    """Output style requested by the caller."""

    AUTO = "auto"  # Structured when a schema exists, text otherwise
    TEXT = "text"
    STRUCTURED = "structured"  # Falls back to text without a schema


class SessionMode(str, Enum):
    """Output style actually used by a session."""

    STRUCTURED = "structured"
    TEXT = "text"


class StreamConfig(BaseModel):
    """Tuning knobs for one streaming run."""

    timeout_s: float | None = Field(default=30.0, gt=0)
    reparse_every: int = Field(
        default=50,
        ge=1,
        description="Reparse the buffer every N deltas",
    )
    partial_strings: bool = Field(
        default=True,
        description="Keep the text of an unterminated trailing string when reparsing",
    )
    progress_log_every: int = Field(default=200, ge=1)
    snapshot_head_chars: int = Field(default=500, ge=0)
    snapshot_tail_chars: int = Field(default=100, ge=0)

    model_config = ConfigDict(frozen=True)


class ItemTypeConfig(BaseModel):
    """Describes one target array and how to judge its items complete."""

    field: str = Field(..., min_length=1, description="Event field name (e.g. 'potential_causes')")
    path: str | None = Field(
        default=None,
        description="Dotted path below the schema root; defaults to ``field``",
    )
    id_field: str = Field(..., min_length=1)
    required_fields: list[str] = Field(default_factory=list)
    min_lengths: dict[str, int] = Field(default_factory=dict)
    optional_fields: list[str] = Field(default_factory=list)
    default_min_length: int = Field(default=1, ge=0)
    display_name: str | None = None

    model_config = ConfigDict(frozen=True)

    @property
    def items_path(self) -> str:
        return self.path or self.field

    @property
    def label(self) -> str:
        return self.display_name or self.field

    def min_length(self, name: str) -> int:
        return self.min_lengths.get(name, self.default_min_length)

    @property
    def primary_field(self) -> str:
        """Field used when logging an item (first required field or the id)."""

        if self.required_fields:
            return self.required_fields[0]
        return self.id_field

    @model_validator(mode="after")
    def _check_min_lengths(self) -> ItemTypeConfig:
        unknown = set(self.min_lengths) - set(self.required_fields)
        if unknown:
            raise ValueError(f"min_lengths refers to non-required fields: {sorted(unknown)}")
        negative = [name for name, value in self.min_lengths.items() if value < 0]
        if negative:
            raise ValueError(f"min_lengths must be >= 0: {sorted(negative)}")
        return self


class StreamSchema(BaseModel):
    """Target arrays extracted from a structured output document."""

    root_path: str | None = Field(
        default="data",
        description="Dotted path of the container holding the target arrays",
    )
    item_types: list[ItemTypeConfig] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def _check_unique_fields(self) -> StreamSchema:
        seen: set[str] = set()
        for item_type in self.item_types:
            if item_type.field in seen:
                raise ValueError(f"Duplicate item type field '{item_type.field}'")
            seen.add(item_type.field)
        return self

    def get(self, field: str) -> ItemTypeConfig | None:
        for item_type in self.item_types:
            if item_type.field == field:
                return item_type
        return None

    @property
    def field_names(self) -> list[str]:
        return [item_type.field for item_type in self.item_types]


def load_schema(path: str | Path) -> StreamSchema:
    """Load a stream schema from a YAML file.

    The file holds an optional ``root_path`` and an ``item_types`` list, or a mapping
    of field name to item type settings::

        root_path: data
        item_types:
          potential_causes:
            id_field: cause_id
            required_fields: [name_localized, explanation_localized]
            min_lengths: {name_localized: 10}
    """

    source = Path(path)
    try:
        data = yaml.safe_load(source.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise SchemaError(f"Schema file {source} is not valid YAML: {exc}") from exc
    if not isinstance(data, Mapping):
        raise SchemaError(f"Schema file {source} must contain a mapping")
    return schema_from_mapping(data)


def schema_from_mapping(data: Mapping[str, Any]) -> StreamSchema:
    payload = dict(data)
    item_types = payload.get("item_types")
    if isinstance(item_types, Mapping):
        payload["item_types"] = [
            {"field": name, **(dict(settings) if isinstance(settings, Mapping) else {})}
            for name, settings in item_types.items()
        ]
    try:
        return StreamSchema.model_validate(payload)
    except ValidationError as exc:
        raise SchemaError(str(exc)) from exc


def resolve_mode(requested: StreamingMode | str, schema: StreamSchema | None) -> SessionMode:
    """Pick the session mode; structured output needs a non-empty schema."""

    requested = StreamingMode(requested)
    if requested is StreamingMode.TEXT:
        return SessionMode.TEXT
    if schema is not None and schema.item_types:
        return SessionMode.STRUCTURED
    return SessionMode.TEXT


__all__ = [
    "ItemTypeConfig",
    "SessionMode",
    "StreamConfig",
    "StreamSchema",
    "StreamingMode",
    "load_schema",
    "resolve_mode",
    "schema_from_mapping",
]
