from __future__ import annotations

import random
from datetime import UTC, datetime
from uuid import UUID, uuid4

from lifesim.api.models import PlayerProfile, RunPhase, RunState
from lifesim.errors import RunNotFoundError
from lifesim.kv import KeyValueStore

RUN_KEY_PREFIX = "lifesim:run:"  # + {uuid}

DEFAULT_SESSION_TTL_S = 60 * 60 * 2


def _now() -> datetime:
    return datetime.now(tz=UTC)


def _run_key(run_id: UUID) -> str:
    return f"{RUN_KEY_PREFIX}{run_id}"


def save_run(*, store: KeyValueStore, state: RunState, ttl_s: float = DEFAULT_SESSION_TTL_S) -> None:
    # Every save refreshes the session TTL.
    state.last_updated_at = _now()
    store.set(_run_key(state.run_id), state.model_dump_json(), ttl_s=ttl_s)


def get_run(*, store: KeyValueStore, run_id: UUID) -> RunState | None:
    raw = store.get(_run_key(run_id))
    if not raw:
        return None
    return RunState.model_validate_json(raw)


def require_run(*, store: KeyValueStore, run_id: UUID) -> RunState:
    state = get_run(store=store, run_id=run_id)
    if state is None:
        raise RunNotFoundError("Run not found")
    return state


def new_run(*, session_id: str, profile: PlayerProfile) -> RunState:
    now = _now()
    return RunState(
        run_id=uuid4(),
        session_id=session_id,
        profile=profile,
        created_at=now,
        last_updated_at=now,
        seed=random.SystemRandom().randint(1, 2**31 - 1),
        phase=RunPhase.awaiting_birth,
    )
