from __future__ import annotations

import os
import random
from collections.abc import Callable, Iterable, Sequence
from pathlib import Path

import pytest

from lifesim.api.models import EffectSet, Option, Relationship, RelationshipChange, RunState, Scenario, StatVector
from lifesim.errors import GeneratorUnavailableError
from lifesim.generator.contract import BirthRequest, BirthScenario, EpilogueRequest, TurnRequest


@pytest.fixture(scope="session", autouse=True)
def _load_dotenv_for_tests() -> None:
    """Load repo .env for local runs.

    In CI, `.env` is not loaded unless LIFESIM_LOAD_DOTENV_FOR_TESTS=1, so nothing
    here ever reaches a live model.
    """

    if os.environ.get("CI") and os.environ.get("LIFESIM_LOAD_DOTENV_FOR_TESTS") != "1":
        return

    env_path = Path(__file__).resolve().parents[1] / ".env"
    if env_path.exists():
        from dotenv import load_dotenv

        load_dotenv(dotenv_path=env_path, override=False)


class ScriptedRandom(random.Random):
    """random() replays `values`, then returns `fallback`.

    randint/choice still come from the seeded generator, so only the rolls a test
    cares about are pinned.
    """

    def __init__(self, values: Iterable[float] = (), *, seed: object = 0, fallback: float = 0.999) -> None:
        super().__init__(str(seed))
        self._values = list(values)
        self.fallback = fallback

    def random(self) -> float:
        if self._values:
            return self._values.pop(0)
        return self.fallback

    # Defining getrandbits keeps randint/choice on the seeded bit source instead
    # of routing them through the scripted random().
    def getrandbits(self, k: int) -> int:
        return super().getrandbits(k)


def scripted_rng_for(**script: Sequence[float]) -> Callable[[RunState, str], random.Random]:
    """rng_for factory: `mortality=[0.0, 0.5]` pins the mortality rolls of the next turn."""

    pending = {purpose: list(values) for purpose, values in script.items()}

    def rng_for(state: RunState, purpose: str) -> random.Random:
        return ScriptedRandom(pending.pop(purpose, ()), seed=f"{state.seed}:{state.turn}:{purpose}")

    return rng_for


def make_scenario(label: str, *, a: EffectSet | None = None, b: EffectSet | None = None, **kwargs) -> Scenario:
    return Scenario(
        text=f"Scene {label}.",
        options=[
            Option(label=f"{label} A", effects=a or EffectSet()),
            Option(label=f"{label} B", effects=b or EffectSet()),
        ],
        **kwargs,
    )


class FakeScenarioGenerator:
    """Deterministic ScenarioGenerator double that records every request."""

    def __init__(self) -> None:
        self.birth_calls: list[BirthRequest] = []
        self.turn_calls: list[TurnRequest] = []
        self.epilogue_calls: list[EpilogueRequest] = []
        self.fail_birth = False
        self.fail_turns = False
        self.birth_stats = StatVector(money=0.1, health=0.9, stress=0.2, exposure=0.1)
        self.relationships = [
            Relationship(name="Ana", role="mother"),
            Relationship(name="Luis", role="father"),
            Relationship(name="Pip", role="dog"),
        ]
        self.relationship_change = RelationshipChange()
        self.death_cause_hint = "a car crash"
        self.epilogue_text = "A long, ordinary, good life."

    async def birth(self, request: BirthRequest) -> BirthScenario:
        self.birth_calls.append(request)
        if self.fail_birth:
            raise GeneratorUnavailableError("birth generation failed after 3 attempts: ParseFailure: Invalid JSON")
        return BirthScenario(
            scenario=make_scenario("birth", death_cause_hint=self.death_cause_hint),
            birth_stats=self.birth_stats,
            relationships=self.relationships,
        )

    async def turn(self, request: TurnRequest) -> Scenario:
        self.turn_calls.append(request)
        if self.fail_turns:
            raise GeneratorUnavailableError("turn generation failed after 3 attempts: TimeoutError: timed out")
        return make_scenario(
            f"age {request.age_to}",
            relationship_change=self.relationship_change,
            death_cause_hint=self.death_cause_hint,
        )

    async def epilogue(self, request: EpilogueRequest) -> str:
        self.epilogue_calls.append(request)
        return self.epilogue_text


@pytest.fixture()
def fake_generator() -> FakeScenarioGenerator:
    return FakeScenarioGenerator()


@pytest.fixture()
def scripted_random() -> type[ScriptedRandom]:
    return ScriptedRandom


@pytest.fixture()
def rng_script() -> Callable[..., Callable[[RunState, str], random.Random]]:
    return scripted_rng_for


@pytest.fixture()
def scenario_factory() -> Callable[..., Scenario]:
    return make_scenario


@pytest.fixture()
def orchestrator(fake_generator: FakeScenarioGenerator):
    """In-memory orchestrator with strict invariants and a prefetch cache."""

    from lifesim.analytics import MemoryAnalytics
    from lifesim.core.config import EngineConfig
    from lifesim.kv import LogicalClock, MemoryKeyValueStore
    from lifesim.orchestrator import TurnOrchestrator
    from lifesim.prefetch import PrefetchCache

    store = MemoryKeyValueStore(clock=LogicalClock())
    return TurnOrchestrator(
        store=store,
        generator=fake_generator,
        analytics=MemoryAnalytics(),
        engine=EngineConfig(strict_invariants=True),
        prefetch=PrefetchCache(store=store, ttl_s=600),
    )


@pytest.fixture()
def client_and_redis(fake_generator: FakeScenarioGenerator):
    """FastAPI TestClient over fakeredis with the fake generator wired in."""

    from collections.abc import Generator

    import fakeredis
    from fastapi.testclient import TestClient

    from lifesim.api.deps import get_generator, get_redis, get_redis_factory, get_settings
    from lifesim.core.config import EngineConfig
    from lifesim.main import app
    from lifesim.settings import Settings

    server = fakeredis.FakeServer()
    r = fakeredis.FakeRedis(server=server, decode_responses=True)

    def _override() -> Generator[fakeredis.FakeRedis, None, None]:
        yield r

    app.dependency_overrides[get_redis] = _override
    def _factory() -> fakeredis.FakeRedis:
        # Background prefetch opens and closes its own client on the same server.
        return fakeredis.FakeRedis(server=server, decode_responses=True)

    app.dependency_overrides[get_redis_factory] = lambda: _factory
    app.dependency_overrides[get_generator] = lambda: fake_generator
    app.dependency_overrides[get_settings] = lambda: Settings(engine=EngineConfig(strict_invariants=True))
    with TestClient(app) as c:
        yield c, r
    app.dependency_overrides.clear()
