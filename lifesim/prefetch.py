from __future__ import annotations

import logging
from uuid import UUID

from pydantic import BaseModel, ValidationError

from lifesim.api.models import OptionLetter, Scenario
from lifesim.generator.contract import TurnRequest
from lifesim.kv import KeyValueStore

logger = logging.getLogger(__name__)

PREFETCH_KEY_PREFIX = "lifesim:prefetch:"


class PrefetchEntry(BaseModel):
    # The exact request the scenario answers; a hit requires an identical live request.
    request: TurnRequest
    scenario: Scenario


class PrefetchCache:
    """Memoised next-turn scenarios keyed by (run, age, branch).

    Pure memoisation: entries expire, may be evicted at any time, and a miss only
    means the turn generates synchronously.
    """

    def __init__(self, *, store: KeyValueStore, ttl_s: float) -> None:
        self.store = store
        self.ttl_s = ttl_s

    @staticmethod
    def key(run_id: UUID | str, age: int, branch: OptionLetter) -> str:
        return f"{PREFETCH_KEY_PREFIX}{run_id}:{age}:{branch}"

    def put(self, *, run_id: UUID, age: int, branch: OptionLetter, request: TurnRequest, scenario: Scenario) -> None:
        entry = PrefetchEntry(request=request, scenario=scenario)
        self.store.set(self.key(run_id, age, branch), entry.model_dump_json(), ttl_s=self.ttl_s)

    def get(self, *, run_id: UUID, age: int, branch: OptionLetter) -> PrefetchEntry | None:
        key = self.key(run_id, age, branch)
        raw = self.store.get(key)
        if raw is None:
            return None
        try:
            return PrefetchEntry.model_validate_json(raw)
        except ValidationError:
            logger.warning("Dropping unreadable prefetch entry %s", key)
            self.store.delete(key)
            return None

    def lookup(self, *, run_id: UUID, age: int, branch: OptionLetter, request: TurnRequest) -> Scenario | None:
        entry = self.get(run_id=run_id, age=age, branch=branch)
        if entry is None:
            return None
        if entry.request != request:
            logger.debug("Prefetch for run %s age %d branch %s is stale", run_id, age, branch)
            return None
        return entry.scenario

    def discard(self, *, run_id: UUID, age: int) -> None:
        for branch in ("A", "B"):
            self.store.delete(self.key(run_id, age, branch))
