from __future__ import annotations

from statemachine import State, StateMachine

from lifesim.api.models import RunPhase, RunState


class RunFSM(StateMachine):
    """Lifecycle guard around RunState.

    awaiting_birth -> awaiting_choice -> applying_choice -> awaiting_choice ... -> terminated

    `applying_choice` only exists while a turn is being processed under the run
    lock; it is never persisted. `abort` backs out of it when generation fails.
    """

    awaiting_birth = State(
        RunPhase.awaiting_birth.value,
        value=RunPhase.awaiting_birth.value,
        initial=True,
    )
    awaiting_choice = State(RunPhase.awaiting_choice.value, value=RunPhase.awaiting_choice.value)
    applying_choice = State(RunPhase.applying_choice.value, value=RunPhase.applying_choice.value)
    terminated = State(RunPhase.terminated.value, value=RunPhase.terminated.value, final=True)

    born = awaiting_birth.to(awaiting_choice)
    choose = awaiting_choice.to(applying_choice)
    survive = applying_choice.to(awaiting_choice)
    abort = applying_choice.to(awaiting_choice)
    die = applying_choice.to(terminated)

    def __init__(self, run_state: RunState):
        self.run_state = run_state
        super().__init__(start_value=run_state.phase.value)

    def sync_phase_to_model(self) -> None:
        self.run_state.phase = RunPhase(str(self.current_state.value))
