from __future__ import annotations

import random

from lifesim.core.config import AgeBand, AgePolicy
from lifesim.errors import InvalidInputError


def band_for_age(age: int, *, policy: AgePolicy) -> AgeBand:
    for band in policy.bands:
        if band.below is None or age < band.below:
            return band
    # AgePolicy guarantees an open-ended last band.
    return policy.bands[-1]


def year_jump(age: int, *, policy: AgePolicy, rng: random.Random) -> int:
    """Years to add at the next decision point, before the ceiling clamp."""

    if not 0 <= age <= policy.max_age:
        raise InvalidInputError(f"age must be within 0..{policy.max_age}")
    band = band_for_age(age, policy=policy)
    return rng.randint(band.min_jump, band.max_jump)


def next_age(age: int, *, policy: AgePolicy, rng: random.Random) -> int:
    """Age at the next decision point. Never exceeds `policy.max_age`.

    Birth is not progression: the orchestrator keeps age 0 for the birth turn
    and never calls this for it.
    """

    jump = year_jump(age, policy=policy, rng=rng)
    return min(policy.max_age, age + jump)
