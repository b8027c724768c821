from __future__ import annotations

import logging
import random
from collections.abc import Sequence

from lifesim.api.models import Person, Relationship, RelationshipChange
from lifesim.core.config import ParentMortalityConfig
from lifesim.errors import InvariantViolationError

logger = logging.getLogger(__name__)

SLOT_COUNT = 3


def to_relationships(people: Sequence[Person]) -> list[Relationship]:
    return [Relationship(name=p.name.strip(), role=p.role.strip()) for p in people]


def ensure_slots(relationships: Sequence[Relationship], *, strict: bool) -> list[Relationship]:
    """A born run always holds exactly three slots.

    strict: raise. Otherwise log and pad/truncate.
    """

    rels = list(relationships)
    if len(rels) == SLOT_COUNT:
        return rels
    if strict:
        raise InvariantViolationError(f"expected {SLOT_COUNT} relationship slots, got {len(rels)}")

    logger.warning("Repairing relationship slots: got %d, expected %d", len(rels), SLOT_COUNT)
    rels = rels[:SLOT_COUNT]
    while len(rels) < SLOT_COUNT:
        rels.append(Relationship(name="Someone", role="acquaintance"))
    return rels


def is_parent_role(role: str, *, config: ParentMortalityConfig) -> bool:
    words = role.strip().casefold().replace(",", " ").split()
    return bool(words) and words[0] in config.parent_roles


def living_parent_slots(relationships: Sequence[Relationship], *, config: ParentMortalityConfig) -> list[int]:
    return [i for i, r in enumerate(relationships) if r.alive and is_parent_role(r.role, config=config)]


def parent_death_chance(age: int, *, config: ParentMortalityConfig) -> float:
    """Linear from 0 at start_age to max_chance at end_age, flat afterwards."""

    if age <= config.start_age:
        return 0.0
    frac = min(1.0, (age - config.start_age) / (config.end_age - config.start_age))
    return config.max_chance * frac


def roll_parent_death(
    *,
    age: int,
    relationships: Sequence[Relationship],
    config: ParentMortalityConfig,
    rng: random.Random,
) -> int | None:
    """Pick a living parent-role slot to die this turn, or None.

    This is a narrative trigger only; it never feeds the player's own mortality.
    """

    candidates = living_parent_slots(relationships, config=config)
    if not candidates:
        return None
    if rng.random() >= parent_death_chance(age, config=config):
        return None
    return rng.choice(candidates)


def mark_deceased(relationships: Sequence[Relationship], slot: int) -> list[Relationship]:
    rels = list(relationships)
    rels[slot] = rels[slot].model_copy(update={"alive": False})
    return rels


def apply_relationship_change(
    relationships: Sequence[Relationship],
    change: RelationshipChange,
    *,
    mandated_death_slot: int | None = None,
) -> list[Relationship]:
    """Apply a generator-proposed slot change plus any mandated parent death.

    The mandated death wins if both target the same slot.
    """

    rels = list(relationships)

    idx = change.slot_index
    if idx is not None and idx < len(rels) and idx != mandated_death_slot:
        if change.new_person is None:
            rels = mark_deceased(rels, idx)
        else:
            rels[idx] = Relationship(name=change.new_person.name.strip(), role=change.new_person.role.strip())

    if mandated_death_slot is not None and mandated_death_slot < len(rels):
        rels = mark_deceased(rels, mandated_death_slot)

    return rels
