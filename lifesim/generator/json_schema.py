from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from lifesim.api.models import STAT_KEYS


@dataclass(frozen=True, slots=True)
class JsonSchema:
    """Minimal JSON Schema wrapper for OpenAI-style structured outputs."""

    name: str
    schema: dict[str, Any]
    strict: bool = True


_NUMBERS: dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "properties": {k: {"type": "number"} for k in STAT_KEYS},
    "required": list(STAT_KEYS),
}

_PERSON: dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "properties": {"name": {"type": "string"}, "role": {"type": "string"}},
    "required": ["name", "role"],
}

_OPTION: dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "properties": {"label": {"type": "string"}, "effects": _NUMBERS},
    "required": ["label", "effects"],
}

_OPTIONS: dict[str, Any] = {"type": "array", "minItems": 2, "maxItems": 2, "items": _OPTION}

_RELATIONSHIP_CHANGES: dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "replace_index": {"anyOf": [{"type": "integer", "minimum": 0, "maximum": 2}, {"type": "null"}]},
        "new_person": {"anyOf": [_PERSON, {"type": "null"}]},
    },
    "required": ["replace_index", "new_person"],
}

TURN_SCHEMA = JsonSchema(
    name="life_turn",
    schema={
        "type": "object",
        "additionalProperties": False,
        "properties": {
            "text": {"type": "string"},
            "options": _OPTIONS,
            "relationship_changes": _RELATIONSHIP_CHANGES,
            "death_cause_hint": {"type": "string"},
        },
        "required": ["text", "options", "relationship_changes", "death_cause_hint"],
    },
)

BIRTH_SCHEMA = JsonSchema(
    name="birth_turn",
    schema={
        "type": "object",
        "additionalProperties": False,
        "properties": {
            "text": {"type": "string"},
            "options": _OPTIONS,
            "relationships": {"type": "array", "minItems": 3, "maxItems": 3, "items": _PERSON},
            "birth_stats": _NUMBERS,
            "death_cause_hint": {"type": "string"},
        },
        "required": ["text", "options", "relationships", "birth_stats", "death_cause_hint"],
    },
)
