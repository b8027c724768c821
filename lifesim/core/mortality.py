from __future__ import annotations

import random
from dataclasses import dataclass
from enum import StrEnum

from lifesim.api.models import StatVector
from lifesim.core.config import CloseCallPenalty, MortalityConfig
from lifesim.core.stats import clamp01

OLD_AGE_CAUSE = "old age"


class Verdict(StrEnum):
    none = "none"
    close_call = "close_call"
    death = "death"


@dataclass(frozen=True, slots=True)
class Resolution:
    verdict: Verdict
    # Which rule decided a death: "cap", "natural_bypass" or "shield".
    reason: str


@dataclass(frozen=True, slots=True)
class MortalityOutcome:
    p_check: float
    natural: bool
    checked: bool
    verdict: Verdict
    reason: str | None = None

    @property
    def died(self) -> bool:
        return self.verdict == Verdict.death

    @property
    def close_call(self) -> bool:
        return self.verdict == Verdict.close_call


def natural_age_term(age: int, *, config: MortalityConfig) -> float:
    """Super-linear old-age pressure: negligible before ~50, material after ~85."""

    if age <= config.natural_onset:
        return 0.0
    span = config.max_age - config.natural_onset
    x = min(1.0, (age - config.natural_onset) / span)
    return config.natural_scale * x**config.natural_exponent


def risk_term(stats: StatVector, *, config: MortalityConfig) -> float:
    """Convex in exposure, frailty (1 - health) and stress.

    Moderate values contribute little; only several simultaneous extremes add up.
    """

    p = config.risk_exponent
    return (
        config.exposure_weight * clamp01(stats.exposure) ** p
        + config.frailty_weight * (1.0 - clamp01(stats.health)) ** p
        + config.stress_weight * clamp01(stats.stress) ** p
    )


def life_buffers(stats: StatVector, *, config: MortalityConfig) -> float:
    return config.stability_buffer * max(0.0, stats.stability - 0.5) + config.freedom_buffer * max(
        0.0, stats.freedom - 0.5
    )


def combine_terms(natural: float, risk: float, *, config: MortalityConfig) -> float:
    return max(natural, risk) + config.secondary_share * min(natural, risk)


def is_natural_pathway(age: int, stats: StatVector, *, config: MortalityConfig) -> bool:
    natural = natural_age_term(age, config=config)
    return natural > 0.0 and natural >= risk_term(stats, config=config)


def death_check_probability(age: int, stats: StatVector, *, config: MortalityConfig) -> float:
    """Stage 1: probability that a death check fires this turn."""

    if age < config.adult_age:
        return 0.0
    if age >= config.max_age:
        return 1.0

    combined = combine_terms(
        natural_age_term(age, config=config),
        risk_term(stats, config=config),
        config=config,
    )
    p = combined - life_buffers(stats, config=config)
    return max(0.0, min(config.max_check_probability, p))


def shield_probability(close_calls: int, *, config: MortalityConfig) -> float:
    idx = min(max(close_calls, 0), len(config.shield_table) - 1)
    return config.shield_table[idx]


def natural_bypass_fraction(age: int, *, config: MortalityConfig) -> float:
    span = config.natural_bypass_full - config.natural_bypass_start
    return max(0.0, min(1.0, (age - config.natural_bypass_start) / span))


def resolve_death_check(
    *,
    age: int,
    close_calls: int,
    natural: bool,
    config: MortalityConfig,
    rng: random.Random,
) -> Resolution:
    """Stage 2: given a fired check, death or a survived close call."""

    if age >= config.max_age:
        return Resolution(verdict=Verdict.death, reason="cap")

    if natural and age >= config.natural_bypass_start:
        if rng.random() < natural_bypass_fraction(age, config=config):
            return Resolution(verdict=Verdict.death, reason="natural_bypass")

    if rng.random() < shield_probability(close_calls, config=config):
        return Resolution(verdict=Verdict.close_call, reason="shield")
    return Resolution(verdict=Verdict.death, reason="shield")


def evaluate_turn(
    *,
    age: int,
    stats: StatVector,
    close_calls: int,
    config: MortalityConfig,
    rng: random.Random,
) -> MortalityOutcome:
    p_check = death_check_probability(age, stats, config=config)
    natural = is_natural_pathway(age, stats, config=config)

    if p_check <= 0.0:
        return MortalityOutcome(p_check=p_check, natural=natural, checked=False, verdict=Verdict.none)

    # p_check == 1 only at the cap; skip the roll so the cap is deterministic.
    fired = p_check >= 1.0 or rng.random() < p_check
    if not fired:
        return MortalityOutcome(p_check=p_check, natural=natural, checked=False, verdict=Verdict.none)

    res = resolve_death_check(age=age, close_calls=close_calls, natural=natural, config=config, rng=rng)
    return MortalityOutcome(p_check=p_check, natural=natural, checked=True, verdict=res.verdict, reason=res.reason)


def death_cause(outcome: MortalityOutcome, *, age: int, hint: str, config: MortalityConfig) -> str:
    """Old age at the cap or for a natural death in the bypass band, else the hint.

    A mid-life natural-pathway death (healthy stats, shield lost) still takes the
    narrative cause.
    """

    if outcome.reason == "cap" or (outcome.natural and age >= config.natural_bypass_start):
        return OLD_AGE_CAUSE
    return hint.strip() or "complications"


def apply_close_call_penalty(stats: StatVector, *, penalty: CloseCallPenalty) -> StatVector:
    """Penalty bundle for surviving a check, applied after the chosen option's effects."""

    floor = min(stats.health, penalty.health_floor)
    return StatVector(
        money=stats.money,
        stability=clamp01(stats.stability + penalty.stability),
        status=stats.status,
        health=max(floor, clamp01(stats.health + penalty.health)),
        stress=clamp01(stats.stress + penalty.stress),
        freedom=stats.freedom,
        exposure=clamp01(stats.exposure + penalty.exposure),
    )
