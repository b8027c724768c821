from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, computed_field

STAT_KEYS: tuple[str, ...] = ("money", "stability", "status", "health", "stress", "freedom", "exposure")

OptionLetter = Literal["A", "B"]


class StatVector(BaseModel):
    """A life's condition: 7 channels, each within [0, 1].

    health/stability/freedom/status/money are "higher is better";
    stress/exposure are "higher is worse" (only the mortality model cares).
    """

    model_config = ConfigDict(frozen=True)

    money: float = Field(0.5, ge=0.0, le=1.0)
    stability: float = Field(0.5, ge=0.0, le=1.0)
    status: float = Field(0.5, ge=0.0, le=1.0)
    health: float = Field(0.5, ge=0.0, le=1.0)
    stress: float = Field(0.5, ge=0.0, le=1.0)
    freedom: float = Field(0.5, ge=0.0, le=1.0)
    exposure: float = Field(0.5, ge=0.0, le=1.0)


class EffectSet(BaseModel):
    """Proposed deltas for a StatVector. Missing channels mean "no change"."""

    model_config = ConfigDict(frozen=True)

    money: float = 0.0
    stability: float = 0.0
    status: float = 0.0
    health: float = 0.0
    stress: float = 0.0
    freedom: float = 0.0
    exposure: float = 0.0


class Person(BaseModel):
    name: str = Field(..., min_length=1, max_length=80)
    role: str = Field(..., min_length=1, max_length=80)


class Relationship(Person):
    alive: bool = True

    @computed_field  # type: ignore[prop-decorator]
    @property
    def display(self) -> str:
        if self.alive:
            return f"{self.name} ({self.role})"
        return f"{self.name} ({self.role}, deceased)"


class Option(BaseModel):
    label: str = Field(..., min_length=1)
    effects: EffectSet = Field(default_factory=EffectSet)


class RelationshipChange(BaseModel):
    # No slot means no change. A slot with no new person means that person died.
    slot_index: int | None = Field(None, ge=0, le=2)
    new_person: Person | None = None


class Scenario(BaseModel):
    text: str
    options: list[Option] = Field(..., min_length=2, max_length=2)
    relationship_change: RelationshipChange = Field(default_factory=RelationshipChange)
    death_cause_hint: str = ""

    def option(self, letter: OptionLetter) -> Option:
        return self.options[0] if letter == "A" else self.options[1]


class PlayerProfile(BaseModel):
    gender: str = Field("unspecified", max_length=40)
    city: str = Field("", max_length=120)
    desire: str = Field("", max_length=400)


class ChoiceRecord(BaseModel):
    age: int
    option: OptionLetter
    label: str


class DeathRecord(BaseModel):
    age: int
    cause: str
    close_calls: int


class RunPhase(StrEnum):
    awaiting_birth = "awaiting_birth"
    awaiting_choice = "awaiting_choice"
    applying_choice = "applying_choice"
    terminated = "terminated"


class RunState(BaseModel):
    run_id: UUID
    session_id: str = ""
    profile: PlayerProfile = Field(default_factory=PlayerProfile)
    created_at: datetime
    last_updated_at: datetime

    # Per-turn randomness is derived from this, so a retried turn replays identically.
    # Server-side only: see RUN_PRIVATE_FIELDS.
    seed: int

    phase: RunPhase = RunPhase.awaiting_birth

    # Number of committed choices.
    turn: int = Field(0, ge=0)
    age: int = Field(0, ge=0, le=111)

    # None until the birth payload arrives.
    stats: StatVector | None = None
    relationships: list[Relationship] = Field(default_factory=list)

    # Close-call ledger: only ever grows within a run.
    close_calls: int = Field(0, ge=0)
    alive: bool = True

    history: list[ChoiceRecord] = Field(default_factory=list)
    current_scenario: Scenario | None = None
    death: DeathRecord | None = None


# Stored with the run but never served; with the seed a client could replay every roll.
RUN_PRIVATE_FIELDS = {"seed"}


class RunCreateRequest(BaseModel):
    session_id: str = Field("", max_length=120)
    profile: PlayerProfile = Field(default_factory=PlayerProfile)


class ChoiceRequest(BaseModel):
    option: OptionLetter


class TurnResult(BaseModel):
    run_id: UUID
    updated_stats: StatVector
    died: bool
    close_call: bool
    close_call_count: int
    age_from: int
    # None when died: there is no further age.
    age_to: int | None
    cause: str | None = None
    next_scenario: Scenario | None = None
    relationships: list[Relationship] = Field(default_factory=list)
    used_prefetch: bool = False


class EpilogueResponse(BaseModel):
    run_id: UUID
    text: str


class AnalyticsEventRequest(BaseModel):
    type: str = Field(..., min_length=1, max_length=80)
    session_id: str = ""
    run_id: str = ""
    data: dict[str, Any] = Field(default_factory=dict)


class DesireCount(BaseModel):
    desire: str
    count: int


class AnalyticsSummary(BaseModel):
    total_events: int
    event_counts: dict[str, int]
    avg_death_age: int | None
    top_desires: list[DesireCount]
