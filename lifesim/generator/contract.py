from __future__ import annotations

from typing import Protocol

from pydantic import BaseModel, Field

from lifesim.api.models import PlayerProfile, Relationship, Scenario, StatVector


class CloseCallContext(BaseModel):
    close_calls: int = 0
    survived_last_turn: bool = False


class BirthRequest(BaseModel):
    profile: PlayerProfile


class TurnRequest(BaseModel):
    age_from: int
    age_to: int
    profile: PlayerProfile
    stats: StatVector
    relationships: list[Relationship]
    # Labels of the most recent choices, oldest first.
    history: list[str] = Field(default_factory=list)
    close_call_context: CloseCallContext = Field(default_factory=CloseCallContext)
    mandatory_parent_death_slot: int | None = Field(None, ge=0, le=2)


class EpilogueRequest(BaseModel):
    final_age: int
    cause: str
    profile: PlayerProfile
    stats: StatVector
    relationships: list[Relationship]
    history: list[str] = Field(default_factory=list)


class BirthScenario(BaseModel):
    scenario: Scenario
    birth_stats: StatVector
    relationships: list[Relationship] = Field(..., min_length=3, max_length=3)


class ScenarioGenerator(Protocol):
    """External narrative collaborator.

    Implementations raise GeneratorUnavailableError once they give up; any other
    outcome is a fully validated value.
    """

    async def birth(self, request: BirthRequest) -> BirthScenario:  # pragma: no cover
        ...

    async def turn(self, request: TurnRequest) -> Scenario:  # pragma: no cover
        ...

    async def epilogue(self, request: EpilogueRequest) -> str:  # pragma: no cover
        ...
