from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

import redis


class KeyValueStore(Protocol):
    """String key-value store with per-key expiry.

    Run state, prefetch entries and run locks all go through this seam, so the
    backend (Redis, in-process) can be swapped without touching the orchestrator.
    """

    def get(self, key: str) -> str | None:  # pragma: no cover
        ...

    def set(self, key: str, value: str, *, ttl_s: float | None = None) -> None:  # pragma: no cover
        ...

    def set_if_absent(self, key: str, value: str, *, ttl_s: float) -> bool:  # pragma: no cover
        ...

    def expire(self, key: str, ttl_s: float) -> bool:  # pragma: no cover
        ...

    def delete(self, key: str) -> None:  # pragma: no cover
        ...


def _ms(ttl_s: float) -> int:
    return max(1, int(ttl_s * 1000))


class RedisKeyValueStore:
    def __init__(self, r: redis.Redis) -> None:
        # Expects a client created with decode_responses=True.
        self.r = r

    def get(self, key: str) -> str | None:
        raw = self.r.get(key)
        if raw is None:
            return None
        return raw if isinstance(raw, str) else raw.decode("utf-8")

    def set(self, key: str, value: str, *, ttl_s: float | None = None) -> None:
        self.r.set(key, value, px=_ms(ttl_s) if ttl_s is not None else None)

    def set_if_absent(self, key: str, value: str, *, ttl_s: float) -> bool:
        return bool(self.r.set(key, value, nx=True, px=_ms(ttl_s)))

    def expire(self, key: str, ttl_s: float) -> bool:
        return bool(self.r.pexpire(key, _ms(ttl_s)))

    def delete(self, key: str) -> None:
        self.r.delete(key)


@dataclass(slots=True)
class LogicalClock:
    """Manually advanced clock for exercising expiry without sleeping."""

    now: float = 0.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class MemoryKeyValueStore:
    """In-process store. Expiry is evaluated lazily against `clock`."""

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._data: dict[str, tuple[str, float | None]] = {}
        self._mu = threading.Lock()

    def _live(self, key: str) -> tuple[str, float | None] | None:
        item = self._data.get(key)
        if item is None:
            return None
        _, expires_at = item
        if expires_at is not None and self._clock() >= expires_at:
            self._data.pop(key, None)
            return None
        return item

    def _deadline(self, ttl_s: float | None) -> float | None:
        return None if ttl_s is None else self._clock() + ttl_s

    def get(self, key: str) -> str | None:
        with self._mu:
            item = self._live(key)
            return item[0] if item else None

    def set(self, key: str, value: str, *, ttl_s: float | None = None) -> None:
        with self._mu:
            self._data[key] = (value, self._deadline(ttl_s))

    def set_if_absent(self, key: str, value: str, *, ttl_s: float) -> bool:
        with self._mu:
            if self._live(key) is not None:
                return False
            self._data[key] = (value, self._deadline(ttl_s))
            return True

    def expire(self, key: str, ttl_s: float) -> bool:
        with self._mu:
            item = self._live(key)
            if item is None:
                return False
            self._data[key] = (item[0], self._deadline(ttl_s))
            return True

    def delete(self, key: str) -> None:
        with self._mu:
            self._data.pop(key, None)

    def __len__(self) -> int:
        with self._mu:
            return sum(1 for k in list(self._data) if self._live(k) is not None)
