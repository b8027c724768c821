from __future__ import annotations

from collections.abc import Callable, Generator
from functools import lru_cache
from uuid import UUID

import redis
from fastapi import Depends

from lifesim.analytics import AnalyticsSink, RedisStreamAnalytics
from lifesim.generator.contract import ScenarioGenerator
from lifesim.generator.factory import create_default_generator
from lifesim.infra.redis_client import create_redis
from lifesim.kv import RedisKeyValueStore
from lifesim.orchestrator import TurnOrchestrator, turn_rng_factory
from lifesim.prefetch import PrefetchCache
from lifesim.settings import Settings, settings_from_env

RedisFactory = Callable[[], redis.Redis]


def get_redis_factory() -> RedisFactory:
    return create_redis


def get_redis(factory: RedisFactory = Depends(get_redis_factory)) -> Generator[redis.Redis, None, None]:
    client = factory()
    try:
        yield client
    finally:
        client.close()


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return settings_from_env()


@lru_cache(maxsize=1)
def _default_generator() -> ScenarioGenerator:
    return create_default_generator(settings=get_settings())


def get_generator() -> ScenarioGenerator:
    return _default_generator()


def get_analytics(r: redis.Redis = Depends(get_redis)) -> AnalyticsSink:
    return RedisStreamAnalytics(r)


def build_orchestrator(
    r: redis.Redis,
    *,
    generator: ScenarioGenerator,
    analytics: AnalyticsSink,
    settings: Settings,
) -> TurnOrchestrator:
    store = RedisKeyValueStore(r)
    return TurnOrchestrator(
        store=store,
        generator=generator,
        analytics=analytics,
        engine=settings.engine,
        prefetch=PrefetchCache(store=store, ttl_s=settings.prefetch_ttl_s),
        session_ttl_s=settings.session_ttl_s,
        lock_ttl_s=settings.turn_lock_ttl_s,
        rng_for=turn_rng_factory(settings.rng_secret),
    )


def get_orchestrator(
    r: redis.Redis = Depends(get_redis),
    generator: ScenarioGenerator = Depends(get_generator),
    analytics: AnalyticsSink = Depends(get_analytics),
    settings: Settings = Depends(get_settings),
) -> TurnOrchestrator:
    return build_orchestrator(r, generator=generator, analytics=analytics, settings=settings)


async def prefetch_in_background(
    run_id: UUID,
    *,
    redis_factory: RedisFactory,
    generator: ScenarioGenerator,
    settings: Settings,
) -> int:
    """BackgroundTasks entry point for prefetch.

    Request-scoped clients are closed before background tasks run, so this opens
    and closes its own.
    """

    client = redis_factory()
    try:
        orchestrator = build_orchestrator(
            client, generator=generator, analytics=RedisStreamAnalytics(client), settings=settings
        )
        return await orchestrator.prefetch_next(run_id=run_id)
    finally:
        client.close()
