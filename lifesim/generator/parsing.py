from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from lifesim.api.models import Option, Person, RelationshipChange, Scenario
from lifesim.core.relationships import to_relationships
from lifesim.core.stats import normalize_effects, normalize_stats
from lifesim.generator.contract import BirthScenario

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Parsed(Generic[T]):
    value: T


@dataclass(frozen=True, slots=True)
class ParseFailure:
    """Output was not a JSON object."""

    error: str


@dataclass(frozen=True, slots=True)
class SchemaFailure:
    """Output was JSON but did not match the expected shape."""

    error: str


ParseResult = Parsed[T] | ParseFailure | SchemaFailure


class _Strict(BaseModel):
    model_config = ConfigDict(extra="forbid")


class _WireNumbers(_Strict):
    money: float
    stability: float
    status: float
    health: float
    stress: float
    freedom: float
    exposure: float


class _WirePerson(_Strict):
    name: str = Field(..., min_length=1)
    role: str = Field(..., min_length=1)


class _WireOption(_Strict):
    label: str = Field(..., min_length=1)
    effects: _WireNumbers


class _WireRelationshipChanges(_Strict):
    replace_index: int | None = Field(..., ge=0, le=2)
    new_person: _WirePerson | None


class _WireTurn(_Strict):
    text: str = Field(..., min_length=1)
    options: list[_WireOption] = Field(..., min_length=2, max_length=2)
    relationship_changes: _WireRelationshipChanges
    death_cause_hint: str


class _WireBirth(_Strict):
    text: str = Field(..., min_length=1)
    options: list[_WireOption] = Field(..., min_length=2, max_length=2)
    relationships: list[_WirePerson] = Field(..., min_length=3, max_length=3)
    birth_stats: _WireNumbers
    death_cause_hint: str


def _load_object(text: str) -> dict | ParseFailure:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        return ParseFailure(f"Invalid JSON: {e}")
    if not isinstance(data, dict):
        return ParseFailure("Expected a JSON object")
    return data


def _options(wire: list[_WireOption], *, effect_bound: float) -> list[Option]:
    out: list[Option] = []
    for opt in wire:
        raw = opt.effects.model_dump()
        effects = normalize_effects(raw, bound=effect_bound)
        if effects.model_dump() != raw:
            logger.debug("Clipped option %r effects to +/-%s", opt.label, effect_bound)
        out.append(Option(label=opt.label.strip(), effects=effects))
    return out


def _person(p: _WirePerson | None) -> Person | None:
    if p is None:
        return None
    return Person(name=p.name.strip(), role=p.role.strip())


def parse_scenario(text: str, *, effect_bound: float) -> ParseResult[Scenario]:
    data = _load_object(text)
    if isinstance(data, ParseFailure):
        return data
    try:
        wire = _WireTurn.model_validate(data)
        scenario = Scenario(
            text=wire.text.strip(),
            options=_options(wire.options, effect_bound=effect_bound),
            relationship_change=RelationshipChange(
                slot_index=wire.relationship_changes.replace_index,
                new_person=_person(wire.relationship_changes.new_person),
            ),
            death_cause_hint=wire.death_cause_hint.strip(),
        )
    except ValidationError as e:
        return SchemaFailure(f"Turn payload does not match schema: {e.error_count()} error(s): {e.errors()[0]['msg']}")
    return Parsed(scenario)


def parse_birth(text: str, *, effect_bound: float) -> ParseResult[BirthScenario]:
    data = _load_object(text)
    if isinstance(data, ParseFailure):
        return data
    try:
        wire = _WireBirth.model_validate(data)
        birth = BirthScenario(
            scenario=Scenario(
                text=wire.text.strip(),
                options=_options(wire.options, effect_bound=effect_bound),
                death_cause_hint=wire.death_cause_hint.strip(),
            ),
            birth_stats=normalize_stats(wire.birth_stats.model_dump()),
            relationships=to_relationships([_person(p) for p in wire.relationships]),  # type: ignore[misc]
        )
    except ValidationError as e:
        return SchemaFailure(f"Birth payload does not match schema: {e.error_count()} error(s): {e.errors()[0]['msg']}")
    return Parsed(birth)


def parse_epilogue(text: str) -> ParseResult[str]:
    # Plain prose; an empty answer is allowed and replaced by the caller's fallback.
    return Parsed(text.strip())
