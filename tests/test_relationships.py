from __future__ import annotations

import pytest

from lifesim.api.models import Person, Relationship, RelationshipChange
from lifesim.core.config import ParentMortalityConfig
from lifesim.core.relationships import (
    apply_relationship_change,
    ensure_slots,
    is_parent_role,
    living_parent_slots,
    parent_death_chance,
    roll_parent_death,
)
from lifesim.errors import InvariantViolationError

CFG = ParentMortalityConfig()

FAMILY = [
    Relationship(name="Ana", role="mother"),
    Relationship(name="Luis", role="Father"),
    Relationship(name="Mei", role="best friend"),
]


def test_display_is_derived_from_alive_flag() -> None:
    assert FAMILY[0].display == "Ana (mother)"
    assert FAMILY[0].model_copy(update={"alive": False}).display == "Ana (mother, deceased)"


def test_parent_roles_match_on_first_word_case_insensitively() -> None:
    assert is_parent_role("Mother", config=CFG)
    assert is_parent_role("stepfather, retired", config=CFG)
    assert not is_parent_role("godmother's friend", config=CFG)
    assert not is_parent_role("", config=CFG)


def test_living_parent_slots_skip_the_deceased() -> None:
    rels = [FAMILY[0].model_copy(update={"alive": False}), FAMILY[1], FAMILY[2]]
    assert living_parent_slots(rels, config=CFG) == [1]


@pytest.mark.parametrize(("age", "expected"), [(10, 0.0), (30, 0.0), (52.5, 0.25), (75, 0.5), (95, 0.5)])
def test_parent_death_chance_is_linear_between_bounds(age: float, expected: float) -> None:
    assert parent_death_chance(age, config=CFG) == pytest.approx(expected)  # type: ignore[arg-type]


def test_roll_parent_death_picks_a_living_parent(scripted_random) -> None:
    slot = roll_parent_death(age=80, relationships=FAMILY, config=CFG, rng=scripted_random([0.1]))
    assert slot in (0, 1)


def test_roll_parent_death_respects_chance(scripted_random) -> None:
    assert roll_parent_death(age=80, relationships=FAMILY, config=CFG, rng=scripted_random([0.6])) is None
    assert roll_parent_death(age=20, relationships=FAMILY, config=CFG, rng=scripted_random([0.0])) is None


def test_roll_parent_death_without_parents_never_fires(scripted_random) -> None:
    friends = [Relationship(name=n, role="friend") for n in ("A", "B", "C")]
    assert roll_parent_death(age=80, relationships=friends, config=CFG, rng=scripted_random([0.0])) is None


def test_relationship_change_replaces_a_slot() -> None:
    out = apply_relationship_change(
        FAMILY, RelationshipChange(slot_index=2, new_person=Person(name=" Sam ", role="partner"))
    )
    assert out[2] == Relationship(name="Sam", role="partner")
    assert out[:2] == FAMILY[:2]


def test_relationship_change_without_person_marks_death() -> None:
    out = apply_relationship_change(FAMILY, RelationshipChange(slot_index=2, new_person=None))
    assert out[2].alive is False
    assert out[2].name == "Mei"


def test_no_change_keeps_slots() -> None:
    assert apply_relationship_change(FAMILY, RelationshipChange()) == FAMILY


def test_mandated_parent_death_wins_over_replacement() -> None:
    out = apply_relationship_change(
        FAMILY,
        RelationshipChange(slot_index=0, new_person=Person(name="Eve", role="stepmother")),
        mandated_death_slot=0,
    )
    assert out[0].name == "Ana"
    assert out[0].alive is False


def test_mandated_death_applies_alongside_other_change() -> None:
    out = apply_relationship_change(
        FAMILY,
        RelationshipChange(slot_index=2, new_person=Person(name="Sam", role="partner")),
        mandated_death_slot=1,
    )
    assert out[1].alive is False
    assert out[2].name == "Sam"


def test_ensure_slots_strict_raises() -> None:
    with pytest.raises(InvariantViolationError):
        ensure_slots(FAMILY[:2], strict=True)


def test_ensure_slots_lenient_pads_and_truncates() -> None:
    padded = ensure_slots(FAMILY[:1], strict=False)
    assert len(padded) == 3
    assert padded[2].display == "Someone (acquaintance)"

    extra = FAMILY + [Relationship(name="X", role="cousin")]
    assert ensure_slots(extra, strict=False) == FAMILY
