from __future__ import annotations

import pytest
from statemachine.exceptions import TransitionNotAllowed

from lifesim.api.models import PlayerProfile, RunPhase, RunState, StatVector
from lifesim.errors import InvalidInputError, PhaseConflictError, RunConflictError, RunTerminatedError
from lifesim.fsm import RunFSM
from lifesim.run_store import new_run
from lifesim.turn_processing.validators import ValidationContext, pipeline_for


def _run(**updates: object) -> RunState:
    return new_run(session_id="s", profile=PlayerProfile()).model_copy(update=updates)


def test_fsm_walks_the_happy_path() -> None:
    state = _run()
    fsm = RunFSM(state)

    fsm.born()
    fsm.choose()
    fsm.sync_phase_to_model()
    assert state.phase == RunPhase.applying_choice

    fsm.survive()
    fsm.choose()
    fsm.die()
    fsm.sync_phase_to_model()
    assert state.phase == RunPhase.terminated


def test_fsm_resumes_from_persisted_phase() -> None:
    fsm = RunFSM(_run(phase=RunPhase.awaiting_choice))
    assert fsm.current_state.value == "awaiting_choice"

    fsm.choose()
    fsm.abort()
    assert fsm.current_state.value == "awaiting_choice"


def test_fsm_rejects_turns_after_death() -> None:
    fsm = RunFSM(_run(phase=RunPhase.terminated, alive=False))
    with pytest.raises(TransitionNotAllowed):
        fsm.choose()


def test_fsm_cannot_skip_birth() -> None:
    fsm = RunFSM(_run())
    with pytest.raises(TransitionNotAllowed):
        fsm.choose()


def test_phase_validator_denies_wrong_phase() -> None:
    state = _run()
    ctx = ValidationContext(run_id=str(state.run_id), operation="choose", option="A")

    with pytest.raises(PhaseConflictError) as e:
        pipeline_for("choose").validate(ctx=ctx, state=state)

    assert "not allowed" in str(e.value)
    assert "awaiting_birth" in str(e.value)


def test_choose_denied_if_terminated() -> None:
    state = _run(phase=RunPhase.terminated, alive=False, stats=StatVector())
    ctx = ValidationContext(run_id=str(state.run_id), operation="choose", option="B")

    with pytest.raises(RunTerminatedError) as e:
        pipeline_for("choose").validate(ctx=ctx, state=state)

    assert isinstance(e.value, RunConflictError)
    assert str(e.value) == "Run has ended; 'choose' is not allowed"


def test_bad_option_is_rejected_before_state_checks() -> None:
    state = _run(phase=RunPhase.terminated, alive=False)
    ctx = ValidationContext(run_id=str(state.run_id), operation="choose", option="C")

    with pytest.raises(InvalidInputError):
        pipeline_for("choose").validate(ctx=ctx, state=state)


def test_choose_requires_a_pending_scenario() -> None:
    state = _run(phase=RunPhase.awaiting_choice, stats=StatVector())
    ctx = ValidationContext(run_id=str(state.run_id), operation="choose", option="A")

    with pytest.raises(PhaseConflictError) as e:
        pipeline_for("choose").validate(ctx=ctx, state=state)
    assert "No scenario" in str(e.value)


def test_epilogue_requires_a_dead_run() -> None:
    state = _run(phase=RunPhase.awaiting_choice)
    ctx = ValidationContext(run_id=str(state.run_id), operation="epilogue")

    with pytest.raises(PhaseConflictError):
        pipeline_for("epilogue").validate(ctx=ctx, state=state)


def test_birth_only_once() -> None:
    state = _run(phase=RunPhase.awaiting_choice)
    ctx = ValidationContext(run_id=str(state.run_id), operation="birth")

    with pytest.raises(PhaseConflictError):
        pipeline_for("birth").validate(ctx=ctx, state=state)


def test_unknown_operation_pipeline_raises() -> None:
    with pytest.raises(InvalidInputError) as e:
        pipeline_for("nope")
    assert "Unknown operation" in str(e.value)
