from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from lifesim.api.models import RunPhase, RunState
from lifesim.errors import InvalidInputError, PhaseConflictError, RunTerminatedError


@dataclass(frozen=True, slots=True)
class ValidationContext:
    """Inputs available to validators. Small enough to log as-is."""

    run_id: str
    operation: str
    option: str | None = None


class RunValidator(ABC):
    @abstractmethod
    def validate(self, *, ctx: ValidationContext, state: RunState) -> None:
        raise NotImplementedError


@dataclass(frozen=True, slots=True)
class TerminalRunValidator(RunValidator):
    """A dead run accepts no further turns."""

    def validate(self, *, ctx: ValidationContext, state: RunState) -> None:
        if state.phase == RunPhase.terminated or not state.alive:
            raise RunTerminatedError(f"Run has ended; '{ctx.operation}' is not allowed")


@dataclass(frozen=True, slots=True)
class PhaseValidator(RunValidator):
    allowed_phases: frozenset[RunPhase]

    def validate(self, *, ctx: ValidationContext, state: RunState) -> None:
        if state.phase not in self.allowed_phases:
            allowed = ",".join(sorted(p.value for p in self.allowed_phases))
            raise PhaseConflictError(
                f"Operation '{ctx.operation}' not allowed in phase '{state.phase.value}' (allowed: {allowed})"
            )


@dataclass(frozen=True, slots=True)
class PendingScenarioValidator(RunValidator):
    """A choice needs a scenario on offer and a born character to apply it to."""

    def validate(self, *, ctx: ValidationContext, state: RunState) -> None:
        if state.current_scenario is None or state.stats is None:
            raise PhaseConflictError("No scenario is on offer for this run")


@dataclass(frozen=True, slots=True)
class OptionValidator(RunValidator):
    def validate(self, *, ctx: ValidationContext, state: RunState) -> None:
        if ctx.option not in ("A", "B"):
            raise InvalidInputError("option must be 'A' or 'B'")


@dataclass(frozen=True, slots=True)
class AgeRangeValidator(RunValidator):
    max_age: int = 111

    def validate(self, *, ctx: ValidationContext, state: RunState) -> None:
        if not 0 <= state.age <= self.max_age:
            raise InvalidInputError(f"age {state.age} outside 0..{self.max_age}")


@dataclass(frozen=True, slots=True)
class ValidatorPipeline:
    validators: tuple[RunValidator, ...]

    def validate(self, *, ctx: ValidationContext, state: RunState) -> None:
        for v in self.validators:
            v.validate(ctx=ctx, state=state)


DEFAULT_PIPELINES: dict[str, ValidatorPipeline] = {
    "birth": ValidatorPipeline(
        validators=(
            TerminalRunValidator(),
            PhaseValidator(allowed_phases=frozenset({RunPhase.awaiting_birth})),
        )
    ),
    "choose": ValidatorPipeline(
        validators=(
            OptionValidator(),
            TerminalRunValidator(),
            PhaseValidator(allowed_phases=frozenset({RunPhase.awaiting_choice})),
            PendingScenarioValidator(),
            AgeRangeValidator(),
        )
    ),
    "epilogue": ValidatorPipeline(
        validators=(PhaseValidator(allowed_phases=frozenset({RunPhase.terminated})),),
    ),
}


def pipeline_for(operation: str) -> ValidatorPipeline:
    pipe = DEFAULT_PIPELINES.get(operation)
    if pipe is None:
        raise InvalidInputError(f"Unknown operation: {operation}")
    return pipe
