from __future__ import annotations

import os
from dataclasses import dataclass, field

from lifesim.core.config import EngineConfig, MortalityConfig
from lifesim.generator.retry import RetryPolicy


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {raw!r}") from e


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().casefold() in {"1", "true", "yes", "on"}


def _env_floats(name: str, default: tuple[float, ...]) -> tuple[float, ...]:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return tuple(float(p) for p in raw.split(",") if p.strip())
    except ValueError as e:
        raise ValueError(f"{name} must be a comma-separated list of numbers, got {raw!r}") from e


@dataclass(frozen=True, slots=True)
class Settings:
    engine: EngineConfig = field(default_factory=EngineConfig)
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    session_ttl_s: float = 60 * 60 * 2
    prefetch_ttl_s: float = 60 * 10
    turn_lock_ttl_s: float = 60.0
    default_model: str = "gpt-4.1"
    # Mixed into every per-turn seed.
    rng_secret: str = ""


def settings_from_env() -> Settings:
    defaults = MortalityConfig()
    mortality = MortalityConfig(
        adult_age=_env_int("LIFESIM_ADULT_AGE", defaults.adult_age),
        shield_table=_env_floats("LIFESIM_SHIELD_TABLE", defaults.shield_table),
    )
    engine = EngineConfig(
        mortality=mortality,
        effect_bound=_env_float("LIFESIM_EFFECT_BOUND", 0.25),
        history_limit=_env_int("LIFESIM_HISTORY_LIMIT", 18),
        strict_invariants=_env_bool("LIFESIM_STRICT_INVARIANTS", False),
    )
    retry = RetryPolicy(
        max_attempts=_env_int("LIFESIM_GENERATOR_MAX_ATTEMPTS", 3),
        base_delay_s=_env_float("LIFESIM_GENERATOR_BASE_DELAY_S", 1.0),
    )
    return Settings(
        engine=engine,
        retry=retry,
        session_ttl_s=_env_float("LIFESIM_SESSION_TTL_S", 60 * 60 * 2),
        prefetch_ttl_s=_env_float("LIFESIM_PREFETCH_TTL_S", 60 * 10),
        turn_lock_ttl_s=_env_float("LIFESIM_TURN_LOCK_TTL_S", 60.0),
        rng_secret=os.environ.get("LIFESIM_RNG_SECRET", ""),
    )
