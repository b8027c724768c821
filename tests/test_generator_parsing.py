from __future__ import annotations

import json

import pytest

from lifesim.api.models import STAT_KEYS
from lifesim.generator.json_schema import BIRTH_SCHEMA, TURN_SCHEMA
from lifesim.generator.parsing import ParseFailure, Parsed, SchemaFailure, parse_birth, parse_epilogue, parse_scenario


def _numbers(**overrides: float) -> dict[str, float]:
    return {**{k: 0.0 for k in STAT_KEYS}, **overrides}


def turn_payload(**overrides: object) -> dict:
    payload = {
        "text": "You are 24 and a job offer arrives from another city.",
        "options": [
            {"label": "Take the job", "effects": _numbers(money=0.2, stability=-0.1)},
            {"label": "Stay home", "effects": _numbers(stability=0.1)},
        ],
        "relationship_changes": {"replace_index": None, "new_person": None},
        "death_cause_hint": "a highway accident",
    }
    payload.update(overrides)
    return payload


def birth_payload(**overrides: object) -> dict:
    payload = {
        "text": "You are born in Lisbon during a heatwave.",
        "options": turn_payload()["options"],
        "relationships": [
            {"name": "Ana", "role": "mother"},
            {"name": "Luis", "role": "father"},
            {"name": "Rita", "role": "grandmother"},
        ],
        "birth_stats": _numbers(money=0.3, stability=0.6, status=0.4, health=0.9, stress=0.2, freedom=0.5, exposure=0.1),
        "death_cause_hint": "pneumonia",
    }
    payload.update(overrides)
    return payload


def test_parse_scenario_accepts_valid_payload() -> None:
    result = parse_scenario(json.dumps(turn_payload()), effect_bound=0.25)

    assert isinstance(result, Parsed)
    scenario = result.value
    assert [o.label for o in scenario.options] == ["Take the job", "Stay home"]
    assert scenario.option("A").effects.money == pytest.approx(0.2)
    assert scenario.relationship_change.slot_index is None
    assert scenario.death_cause_hint == "a highway accident"


def test_parse_scenario_clips_effects_to_bound() -> None:
    payload = turn_payload()
    payload["options"][0]["effects"] = _numbers(money=0.9, health=-0.6)

    result = parse_scenario(json.dumps(payload), effect_bound=0.25)

    assert isinstance(result, Parsed)
    effects = result.value.option("A").effects
    assert effects.money == 0.25
    assert effects.health == -0.25


def test_parse_scenario_maps_relationship_changes() -> None:
    payload = turn_payload(relationship_changes={"replace_index": 2, "new_person": {"name": "Sam", "role": "partner"}})

    result = parse_scenario(json.dumps(payload), effect_bound=0.25)

    assert isinstance(result, Parsed)
    change = result.value.relationship_change
    assert change.slot_index == 2
    assert change.new_person is not None and change.new_person.name == "Sam"


@pytest.mark.parametrize("text", ["not json", "[1, 2]", '"just a string"', ""])
def test_parse_scenario_reports_parse_failure(text: str) -> None:
    assert isinstance(parse_scenario(text, effect_bound=0.25), ParseFailure)


@pytest.mark.parametrize(
    "payload",
    [
        turn_payload(options=turn_payload()["options"][:1]),
        turn_payload(relationship_changes={"replace_index": 5, "new_person": None}),
        turn_payload(surprise="extra field"),
        {k: v for k, v in turn_payload().items() if k != "death_cause_hint"},
    ],
)
def test_parse_scenario_reports_schema_failure(payload: dict) -> None:
    result = parse_scenario(json.dumps(payload), effect_bound=0.25)
    assert isinstance(result, SchemaFailure)
    assert "does not match schema" in result.error


def test_parse_birth_accepts_valid_payload() -> None:
    result = parse_birth(json.dumps(birth_payload()), effect_bound=0.25)

    assert isinstance(result, Parsed)
    birth = result.value
    assert [r.display for r in birth.relationships] == ["Ana (mother)", "Luis (father)", "Rita (grandmother)"]
    assert birth.birth_stats.health == pytest.approx(0.9)
    assert birth.scenario.death_cause_hint == "pneumonia"


def test_parse_birth_clamps_birth_stats() -> None:
    payload = birth_payload(birth_stats=_numbers(health=1.4, stress=-0.3))
    result = parse_birth(json.dumps(payload), effect_bound=0.25)

    assert isinstance(result, Parsed)
    assert result.value.birth_stats.health == 1.0
    assert result.value.birth_stats.stress == 0.0


def test_parse_birth_requires_three_relationships() -> None:
    payload = birth_payload(relationships=birth_payload()["relationships"][:2])
    assert isinstance(parse_birth(json.dumps(payload), effect_bound=0.25), SchemaFailure)


def test_parse_epilogue_is_plain_text() -> None:
    result = parse_epilogue("  You die at 88, in the garden.  \n")
    assert isinstance(result, Parsed)
    assert result.value == "You die at 88, in the garden."


def test_schemas_are_strict_and_require_every_field() -> None:
    for schema in (TURN_SCHEMA, BIRTH_SCHEMA):
        assert schema.strict is True
        body = schema.schema
        assert body["additionalProperties"] is False
        assert set(body["required"]) == set(body["properties"])

    assert TURN_SCHEMA.name == "life_turn"
    assert BIRTH_SCHEMA.name == "birth_turn"
