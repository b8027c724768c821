from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from typing import Any

from lifesim.api.models import STAT_KEYS, EffectSet, StatVector
from lifesim.errors import InvariantViolationError

logger = logging.getLogger(__name__)

NEUTRAL = 0.5


def clamp01(x: Any, *, default: float = NEUTRAL) -> float:
    """Coerce anything into [0, 1]. Non-numeric and NaN become `default`."""

    try:
        n = float(x)
    except (TypeError, ValueError):
        return default
    if math.isnan(n):
        return default
    return max(0.0, min(1.0, n))


def _as_mapping(values: StatVector | EffectSet | Mapping[str, Any] | None) -> Mapping[str, Any]:
    if values is None:
        return {}
    if isinstance(values, (StatVector, EffectSet)):
        return values.model_dump()
    return values


def normalize_stats(stats: StatVector | Mapping[str, Any] | None) -> StatVector:
    raw = _as_mapping(stats)
    return StatVector(**{k: clamp01(raw.get(k, NEUTRAL)) for k in STAT_KEYS})


def normalize_effects(effects: EffectSet | Mapping[str, Any] | None, *, bound: float | None = None) -> EffectSet:
    """Coerce deltas to floats (bad values become 0) and optionally clip to [-bound, +bound]."""

    raw = _as_mapping(effects)
    out: dict[str, float] = {}
    for k in STAT_KEYS:
        try:
            delta = float(raw.get(k, 0.0))
        except (TypeError, ValueError):
            delta = 0.0
        if math.isnan(delta):
            delta = 0.0
        if bound is not None:
            delta = max(-bound, min(bound, delta))
        out[k] = delta
    return EffectSet(**out)


def apply_effects(stats: StatVector | Mapping[str, Any], effects: EffectSet | Mapping[str, Any] | None) -> StatVector:
    """next[k] = clamp01(base[k] + delta[k]) for every channel.

    Pure and total: out-of-range or malformed inputs are coerced, never rejected.
    """

    base = normalize_stats(stats)
    delta = normalize_effects(effects)
    return StatVector(**{k: clamp01(getattr(base, k) + getattr(delta, k)) for k in STAT_KEYS})


def out_of_range_channels(stats: StatVector | Mapping[str, Any]) -> list[str]:
    raw = _as_mapping(stats)
    bad: list[str] = []
    for k in STAT_KEYS:
        v = raw.get(k)
        if not isinstance(v, (int, float)) or math.isnan(v) or not 0.0 <= v <= 1.0:
            bad.append(k)
    return bad


def guard_stats(stats: StatVector | Mapping[str, Any], *, strict: bool) -> StatVector:
    """Check the [0, 1] invariant before stats reach the mortality model.

    strict: raise. Otherwise log and clamp.
    """

    bad = out_of_range_channels(stats)
    if bad:
        if strict:
            raise InvariantViolationError(f"stat channels out of range: {', '.join(bad)}")
        logger.warning("Repairing out-of-range stat channels: %s", ", ".join(bad))
        return normalize_stats(stats)
    if isinstance(stats, StatVector):
        return stats
    return normalize_stats(stats)
