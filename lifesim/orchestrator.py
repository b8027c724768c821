from __future__ import annotations

import logging
import random
from collections.abc import Callable
from typing import Any, cast
from uuid import UUID

from lifesim.analytics import AnalyticsSink, MemoryAnalytics
from lifesim.api.models import (
    ChoiceRecord,
    DeathRecord,
    OptionLetter,
    PlayerProfile,
    RunPhase,
    RunState,
    Scenario,
    StatVector,
    TurnResult,
)
from lifesim.core.aging import next_age
from lifesim.core.config import EngineConfig
from lifesim.core.events import EventType, RunEvent
from lifesim.core.mortality import apply_close_call_penalty, death_cause, evaluate_turn
from lifesim.core.relationships import apply_relationship_change, ensure_slots, roll_parent_death
from lifesim.core.stats import apply_effects, guard_stats
from lifesim.errors import GeneratorUnavailableError, RunBusyError
from lifesim.fsm import RunFSM
from lifesim.generator.contract import (
    BirthRequest,
    CloseCallContext,
    EpilogueRequest,
    ScenarioGenerator,
    TurnRequest,
)
from lifesim.kv import KeyValueStore
from lifesim.lock import ensure_lock_held, run_lock
from lifesim.prefetch import PrefetchCache
from lifesim.run_store import DEFAULT_SESSION_TTL_S, get_run, new_run, require_run, save_run
from lifesim.turn_processing.validators import ValidationContext, pipeline_for

logger = logging.getLogger(__name__)

EPILOGUE_HISTORY = 20

RngFactory = Callable[[RunState, str], random.Random]


def turn_rng_factory(secret: str = "") -> RngFactory:
    """Randomness for one purpose ("mortality", "age", "parent") of a run's current turn.

    Seeded from (secret, seed, turn, purpose): a retried turn and its prefetch both
    see the same age jump and parent roll. The seed never leaves the server, and
    the secret keeps rolls unpredictable even to someone holding a stored run.
    """

    def rng_for(state: RunState, purpose: str) -> random.Random:
        return random.Random(f"{secret}:{state.seed}:{state.turn}:{purpose}")

    return rng_for


turn_rng = turn_rng_factory()


class TurnOrchestrator:
    """Owns every RunState mutation: birth, turns, death.

    Mutations run under a per-run lock and are saved only once fully computed, so a
    failed generator call leaves the stored run exactly as it was.
    """

    def __init__(
        self,
        *,
        store: KeyValueStore,
        generator: ScenarioGenerator,
        analytics: AnalyticsSink | None = None,
        engine: EngineConfig | None = None,
        prefetch: PrefetchCache | None = None,
        session_ttl_s: float = DEFAULT_SESSION_TTL_S,
        lock_ttl_s: float = 60.0,
        rng_for: RngFactory = turn_rng,
    ) -> None:
        self.store = store
        self.generator = generator
        self.analytics = analytics if analytics is not None else MemoryAnalytics()
        self.engine = engine or EngineConfig()
        self.prefetch = prefetch
        self.session_ttl_s = session_ttl_s
        self.lock_ttl_s = lock_ttl_s
        self.rng_for = rng_for

    # ---- helpers ----

    def _emit(self, state: RunState, type: EventType, payload: dict[str, Any]) -> None:
        self.analytics.emit(
            RunEvent.now(type=type, run_id=str(state.run_id), session_id=state.session_id, age=state.age, payload=payload)
        )

    def _save(self, state: RunState) -> None:
        save_run(store=self.store, state=state, ttl_s=self.session_ttl_s)

    def _commit(self, state: RunState, *, token: str) -> None:
        ensure_lock_held(store=self.store, run_id=str(state.run_id), token=token)
        self._save(state)

    def _history_labels(self, history: list[ChoiceRecord]) -> list[str]:
        return [h.label for h in history]

    def _turn_request(
        self,
        state: RunState,
        *,
        stats: StatVector,
        history: list[ChoiceRecord],
        close_calls: int,
        survived_last_turn: bool,
    ) -> TurnRequest:
        """Build the generator request for the turn following `state`'s current one.

        Shared by the live turn and prefetch so their requests compare equal when
        nothing unexpected (a close call) happened in between.
        """

        age_to = next_age(state.age, policy=self.engine.aging, rng=self.rng_for(state, "age"))
        relationships = ensure_slots(state.relationships, strict=self.engine.strict_invariants)
        parent_slot = roll_parent_death(
            age=age_to,
            relationships=relationships,
            config=self.engine.parent_mortality,
            rng=self.rng_for(state, "parent"),
        )
        return TurnRequest(
            age_from=state.age,
            age_to=age_to,
            profile=state.profile,
            stats=stats,
            relationships=relationships,
            history=self._history_labels(history),
            close_call_context=CloseCallContext(close_calls=close_calls, survived_last_turn=survived_last_turn),
            mandatory_parent_death_slot=parent_slot,
        )

    async def _next_scenario(self, *, run_id: UUID, branch: OptionLetter, request: TurnRequest) -> tuple[Scenario, bool]:
        if self.prefetch is not None:
            cached = self.prefetch.lookup(run_id=run_id, age=request.age_from, branch=branch, request=request)
            if cached is not None:
                return cached, True
        return await self.generator.turn(request), False

    # ---- operations ----

    def start_run(self, *, session_id: str = "", profile: PlayerProfile | None = None) -> RunState:
        state = new_run(session_id=session_id, profile=profile or PlayerProfile())
        self._save(state)
        self._emit(state, "RUN_STARTED", state.profile.model_dump())
        return state

    def snapshot(self, *, run_id: UUID) -> RunState:
        return require_run(store=self.store, run_id=run_id)

    async def birth(self, *, run_id: UUID) -> RunState:
        ctx = ValidationContext(run_id=str(run_id), operation="birth")
        with run_lock(store=self.store, run_id=str(run_id), ttl_s=self.lock_ttl_s) as token:
            state = require_run(store=self.store, run_id=run_id)
            pipeline_for("birth").validate(ctx=ctx, state=state)

            born = await self.generator.birth(BirthRequest(profile=state.profile))

            fsm = RunFSM(state)
            state.age = 0
            state.stats = born.birth_stats
            state.relationships = ensure_slots(born.relationships, strict=self.engine.strict_invariants)
            state.current_scenario = born.scenario
            fsm.born()
            fsm.sync_phase_to_model()
            self._commit(state, token=token)

        self._emit(state, "BIRTH", {"stats": state.stats.model_dump(), "relationships": [r.display for r in state.relationships]})
        self._emit(state, "TURN_PRESENTED", {"options": [o.label for o in born.scenario.options]})
        return state

    async def choose(self, *, run_id: UUID, option: str) -> TurnResult:
        ctx = ValidationContext(run_id=str(run_id), operation="choose", option=option)
        with run_lock(store=self.store, run_id=str(run_id), ttl_s=self.lock_ttl_s) as token:
            stored = require_run(store=self.store, run_id=run_id)
            pipeline_for("choose").validate(ctx=ctx, state=stored)

            # Work on a copy; the stored run changes only on a full commit.
            state = stored.model_copy(deep=True)
            fsm = RunFSM(state)
            fsm.choose()
            try:
                return await self._apply_choice(state, fsm, cast(OptionLetter, option), token=token)
            except GeneratorUnavailableError:
                fsm.abort()
                logger.warning("Turn for run %s not committed: generator unavailable", run_id)
                raise
            except RunBusyError:
                logger.warning("Turn for run %s not committed: lock lost to another holder", run_id)
                raise

    async def _apply_choice(self, state: RunState, fsm: RunFSM, letter: OptionLetter, *, token: str) -> TurnResult:
        strict = self.engine.strict_invariants
        scenario = cast(Scenario, state.current_scenario)
        chosen = scenario.option(letter)

        stats_before = guard_stats(cast(StatVector, state.stats), strict=strict)
        stats_after = guard_stats(apply_effects(stats_before, chosen.effects), strict=strict)

        outcome = evaluate_turn(
            age=state.age,
            stats=stats_after,
            close_calls=state.close_calls,
            config=self.engine.mortality,
            rng=self.rng_for(state, "mortality"),
        )

        age_from = state.age
        record = ChoiceRecord(age=age_from, option=letter, label=chosen.label)
        history = (state.history + [record])[-self.engine.history_limit :]
        choice_payload = {
            "option": letter,
            "label": chosen.label,
            "effects": chosen.effects.model_dump(),
            "stats_before": stats_before.model_dump(),
            "stats_after": stats_after.model_dump(),
            "p_check": outcome.p_check,
        }

        if outcome.died:
            cause = death_cause(outcome, age=age_from, hint=scenario.death_cause_hint, config=self.engine.mortality)
            state.stats = stats_after
            state.history = history
            state.alive = False
            state.death = DeathRecord(age=age_from, cause=cause, close_calls=state.close_calls)
            state.current_scenario = None
            state.turn += 1
            fsm.die()
            fsm.sync_phase_to_model()
            self._commit(state, token=token)
            if self.prefetch is not None:
                self.prefetch.discard(run_id=state.run_id, age=age_from)

            logger.info("Run %s died at %d (%s, p_check=%.3f)", state.run_id, age_from, cause, outcome.p_check)
            self._emit(state, "CHOICE_APPLIED", choice_payload)
            self._emit(state, "DEATH", {"cause": cause, "close_calls": state.close_calls, "p_check": outcome.p_check})
            return TurnResult(
                run_id=state.run_id,
                updated_stats=stats_after,
                died=True,
                close_call=False,
                close_call_count=state.close_calls,
                age_from=age_from,
                age_to=None,
                cause=cause,
                relationships=state.relationships,
            )

        close_calls = state.close_calls
        if outcome.close_call:
            stats_after = apply_close_call_penalty(stats_after, penalty=self.engine.close_call_penalty)
            close_calls += 1

        request = self._turn_request(
            state,
            stats=stats_after,
            history=history,
            close_calls=close_calls,
            survived_last_turn=outcome.close_call,
        )
        next_scenario, used_prefetch = await self._next_scenario(run_id=state.run_id, branch=letter, request=request)

        state.stats = stats_after
        state.close_calls = close_calls
        state.history = history
        state.age = request.age_to
        state.relationships = apply_relationship_change(
            request.relationships,
            next_scenario.relationship_change,
            mandated_death_slot=request.mandatory_parent_death_slot,
        )
        state.current_scenario = next_scenario
        state.turn += 1
        fsm.survive()
        fsm.sync_phase_to_model()
        self._commit(state, token=token)
        if self.prefetch is not None:
            self.prefetch.discard(run_id=state.run_id, age=age_from)

        self._emit(state, "CHOICE_APPLIED", choice_payload)
        if outcome.close_call:
            logger.info("Run %s survived a close call at %d (ledger=%d)", state.run_id, age_from, close_calls)
            self._emit(state, "CLOSE_CALL", {"age": age_from, "close_calls": close_calls, "p_check": outcome.p_check})
        if request.mandatory_parent_death_slot is not None:
            lost = state.relationships[request.mandatory_parent_death_slot]
            self._emit(state, "PARENT_DEATH", {"slot": request.mandatory_parent_death_slot, "name": lost.name, "role": lost.role})
        self._emit(state, "TURN_PRESENTED", {"options": [o.label for o in next_scenario.options], "used_prefetch": used_prefetch})

        return TurnResult(
            run_id=state.run_id,
            updated_stats=stats_after,
            died=False,
            close_call=outcome.close_call,
            close_call_count=close_calls,
            age_from=age_from,
            age_to=state.age,
            next_scenario=next_scenario,
            relationships=state.relationships,
            used_prefetch=used_prefetch,
        )

    async def prefetch_next(self, *, run_id: UUID) -> int:
        """Best-effort: generate both branches of the run's next turn ahead of time.

        Returns how many entries were stored. Failures are logged and skipped.
        """

        if self.prefetch is None:
            return 0
        state = get_run(store=self.store, run_id=run_id)
        if state is None or state.phase != RunPhase.awaiting_choice:
            return 0
        if state.current_scenario is None or state.stats is None:
            return 0
        if state.age >= self.engine.mortality.max_age:
            # Death is certain at the cap; there is no next turn.
            return 0

        stored = 0
        for letter in cast(tuple[OptionLetter, ...], ("A", "B")):
            if self.prefetch.get(run_id=run_id, age=state.age, branch=letter) is not None:
                continue
            chosen = state.current_scenario.option(letter)
            record = ChoiceRecord(age=state.age, option=letter, label=chosen.label)
            request = self._turn_request(
                state,
                stats=apply_effects(state.stats, chosen.effects),
                history=(state.history + [record])[-self.engine.history_limit :],
                close_calls=state.close_calls,
                survived_last_turn=False,
            )
            try:
                scenario = await self.generator.turn(request)
            except GeneratorUnavailableError as e:
                logger.warning("Prefetch for run %s branch %s skipped: %s", run_id, letter, e)
                continue
            self.prefetch.put(run_id=run_id, age=state.age, branch=letter, request=request, scenario=scenario)
            stored += 1
        return stored

    async def epilogue(self, *, run_id: UUID) -> str:
        state = require_run(store=self.store, run_id=run_id)
        pipeline_for("epilogue").validate(ctx=ValidationContext(run_id=str(run_id), operation="epilogue"), state=state)

        death = cast(DeathRecord, state.death)
        request = EpilogueRequest(
            final_age=death.age,
            cause=death.cause,
            profile=state.profile,
            stats=cast(StatVector, state.stats),
            relationships=state.relationships,
            history=self._history_labels(state.history)[-EPILOGUE_HISTORY:],
        )
        text = await self.generator.epilogue(request)
        return text or f"You die at {death.age}. Cause: {death.cause}."
