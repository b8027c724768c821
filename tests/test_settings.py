from __future__ import annotations

import pytest

from lifesim.settings import settings_from_env


def test_defaults_without_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "LIFESIM_ADULT_AGE",
        "LIFESIM_SHIELD_TABLE",
        "LIFESIM_EFFECT_BOUND",
        "LIFESIM_HISTORY_LIMIT",
        "LIFESIM_STRICT_INVARIANTS",
        "LIFESIM_GENERATOR_MAX_ATTEMPTS",
        "LIFESIM_SESSION_TTL_S",
        "LIFESIM_RNG_SECRET",
    ):
        monkeypatch.delenv(name, raising=False)

    s = settings_from_env()

    assert s.engine.mortality.adult_age == 17
    assert s.engine.mortality.shield_table == (1.0, 0.8, 0.5, 0.15)
    assert s.engine.effect_bound == 0.25
    assert s.engine.strict_invariants is False
    assert s.retry.max_attempts == 3
    assert s.session_ttl_s == 7200
    assert s.rng_secret == ""


def test_env_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LIFESIM_ADULT_AGE", "18")
    monkeypatch.setenv("LIFESIM_SHIELD_TABLE", "1.0, 0.6, 0.2")
    monkeypatch.setenv("LIFESIM_STRICT_INVARIANTS", "true")
    monkeypatch.setenv("LIFESIM_GENERATOR_MAX_ATTEMPTS", "5")
    monkeypatch.setenv("LIFESIM_PREFETCH_TTL_S", "30")
    monkeypatch.setenv("LIFESIM_RNG_SECRET", "pepper")

    s = settings_from_env()

    assert s.engine.mortality.adult_age == 18
    assert s.engine.mortality.shield_table == (1.0, 0.6, 0.2)
    assert s.engine.strict_invariants is True
    assert s.retry.max_attempts == 5
    assert s.prefetch_ttl_s == 30.0
    assert s.rng_secret == "pepper"


def test_bad_numbers_fail_loudly(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LIFESIM_HISTORY_LIMIT", "lots")
    with pytest.raises(ValueError) as e:
        settings_from_env()
    assert "LIFESIM_HISTORY_LIMIT" in str(e.value)


def test_increasing_shield_table_is_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LIFESIM_SHIELD_TABLE", "0.2,0.9")
    with pytest.raises(ValueError):
        settings_from_env()
