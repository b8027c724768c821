from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True, slots=True)
class AgeBand:
    # Exclusive upper age bound; None means "and older".
    below: int | None
    min_jump: int
    max_jump: int


DEFAULT_AGE_BANDS: tuple[AgeBand, ...] = (
    AgeBand(below=6, min_jump=3, max_jump=5),
    AgeBand(below=13, min_jump=2, max_jump=4),
    # Identity-forming years get the densest decisions.
    AgeBand(below=26, min_jump=1, max_jump=3),
    AgeBand(below=40, min_jump=3, max_jump=6),
    AgeBand(below=60, min_jump=4, max_jump=8),
    AgeBand(below=80, min_jump=5, max_jump=10),
    AgeBand(below=None, min_jump=6, max_jump=12),
)


@dataclass(frozen=True, slots=True)
class MortalityConfig:
    """Every knob of the two-stage mortality model.

    Stage 1 decides whether a death check fires; stage 2 decides whether a fired
    check is fatal or a survived close call.
    """

    adult_age: int = 17
    max_age: int = 111
    max_check_probability: float = 0.95

    natural_onset: int = 40
    natural_exponent: float = 3.0
    natural_scale: float = 0.9

    risk_exponent: float = 3.0
    exposure_weight: float = 0.18
    frailty_weight: float = 0.22
    stress_weight: float = 0.12

    # Share of the weaker pathway added on top of the dominant one.
    secondary_share: float = 0.25

    stability_buffer: float = 0.04
    freedom_buffer: float = 0.03

    natural_bypass_start: int = 90
    natural_bypass_full: int = 110

    # Indexed by min(close_calls, len - 1).
    shield_table: tuple[float, ...] = (1.0, 0.8, 0.5, 0.15)

    def __post_init__(self) -> None:
        if not 0 <= self.adult_age < self.max_age:
            raise ValueError("adult_age must be within [0, max_age)")
        if not 0.0 < self.max_check_probability < 1.0:
            raise ValueError("max_check_probability must be strictly between 0 and 1")
        if self.natural_onset >= self.max_age:
            raise ValueError("natural_onset must be below max_age")
        if self.natural_bypass_full <= self.natural_bypass_start:
            raise ValueError("natural_bypass_full must be greater than natural_bypass_start")
        if not self.shield_table:
            raise ValueError("shield_table must not be empty")
        if any(not 0.0 <= s <= 1.0 for s in self.shield_table):
            raise ValueError("shield_table values must be within [0, 1]")
        if any(b > a for a, b in zip(self.shield_table, self.shield_table[1:])):
            raise ValueError("shield_table must be non-increasing")
        if not 0.0 <= self.secondary_share < 1.0:
            raise ValueError("secondary_share must be within [0, 1)")


@dataclass(frozen=True, slots=True)
class CloseCallPenalty:
    health: float = -0.15
    stress: float = 0.10
    exposure: float = -0.20
    stability: float = -0.05
    # A close call never pushes health below min(current, health_floor).
    health_floor: float = 0.05


@dataclass(frozen=True, slots=True)
class ParentMortalityConfig:
    start_age: int = 30
    end_age: int = 75
    max_chance: float = 0.5
    parent_roles: frozenset[str] = frozenset(
        {"mother", "father", "parent", "guardian", "stepmother", "stepfather", "grandmother", "grandfather"}
    )

    def __post_init__(self) -> None:
        if self.end_age <= self.start_age:
            raise ValueError("end_age must be greater than start_age")
        if not 0.0 <= self.max_chance <= 1.0:
            raise ValueError("max_chance must be within [0, 1]")


@dataclass(frozen=True, slots=True)
class AgePolicy:
    bands: tuple[AgeBand, ...] = DEFAULT_AGE_BANDS
    max_age: int = 111

    def __post_init__(self) -> None:
        if not self.bands or self.bands[-1].below is not None:
            raise ValueError("the last age band must be open-ended")
        for band in self.bands:
            if band.min_jump < 1 or band.max_jump < band.min_jump:
                raise ValueError(f"invalid jump range in band {band}")


@dataclass(frozen=True, slots=True)
class EngineConfig:
    mortality: MortalityConfig = field(default_factory=MortalityConfig)
    aging: AgePolicy = field(default_factory=AgePolicy)
    close_call_penalty: CloseCallPenalty = field(default_factory=CloseCallPenalty)
    parent_mortality: ParentMortalityConfig = field(default_factory=ParentMortalityConfig)
    effect_bound: float = 0.25
    history_limit: int = 18
    # Raise on invariant breaches instead of repairing them.
    strict_invariants: bool = False
