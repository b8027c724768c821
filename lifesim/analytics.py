from __future__ import annotations

import json
import logging
from collections import Counter, deque
from collections.abc import Iterable, Mapping
from typing import Any, Protocol

import redis

from lifesim.api.models import AnalyticsSummary, DesireCount
from lifesim.core.events import RunEvent

logger = logging.getLogger(__name__)

ANALYTICS_STREAM_KEY = "lifesim:analytics"
ANALYTICS_MAX_EVENTS = 5000


class AnalyticsSink(Protocol):
    """Fire-and-forget event sink. `emit` never raises."""

    def emit(self, event: RunEvent) -> None:  # pragma: no cover
        ...

    def recent(self) -> list[dict[str, Any]]:  # pragma: no cover
        ...


def _fields(event: RunEvent) -> dict[str, str]:
    return {
        "type": str(event.type),
        "run_id": event.run_id,
        "session_id": event.session_id,
        "age": str(event.age),
        "payload": json.dumps(event.payload, default=str),
        "ts": event.ts.isoformat(),
    }


def _from_fields(fields: Mapping[str, str]) -> dict[str, Any]:
    try:
        payload = json.loads(fields.get("payload") or "{}")
    except json.JSONDecodeError:
        payload = {}
    return {
        "type": fields.get("type", ""),
        "run_id": fields.get("run_id", ""),
        "session_id": fields.get("session_id", ""),
        "age": int(fields.get("age") or 0),
        "payload": payload if isinstance(payload, dict) else {},
        "ts": fields.get("ts", ""),
    }


class RedisStreamAnalytics:
    """Appends events to a capped Redis stream."""

    def __init__(self, r: redis.Redis, *, stream_key: str = ANALYTICS_STREAM_KEY, maxlen: int = ANALYTICS_MAX_EVENTS) -> None:
        self.r = r
        self.stream_key = stream_key
        self.maxlen = maxlen

    def emit(self, event: RunEvent) -> None:
        try:
            self.r.xadd(self.stream_key, _fields(event), maxlen=self.maxlen, approximate=True)
        except redis.RedisError as e:
            logger.warning("Dropping analytics event %s for run %s: %s", event.type, event.run_id, e)

    def recent(self) -> list[dict[str, Any]]:
        entries = self.r.xrange(self.stream_key, count=self.maxlen)
        return [_from_fields(fields) for _id, fields in entries]


class MemoryAnalytics:
    """Ring buffer of the most recent events (used when no Redis is wired in)."""

    def __init__(self, *, maxlen: int = ANALYTICS_MAX_EVENTS) -> None:
        self._events: deque[dict[str, Any]] = deque(maxlen=maxlen)

    def emit(self, event: RunEvent) -> None:
        self._events.append(_from_fields(_fields(event)))

    def recent(self) -> list[dict[str, Any]]:
        return list(self._events)


def summarize(events: Iterable[Mapping[str, Any]], *, top: int = 20) -> AnalyticsSummary:
    counts: Counter[str] = Counter()
    desires: Counter[str] = Counter()
    death_ages: list[int] = []

    for e in events:
        etype = str(e.get("type", ""))
        counts[etype] += 1
        if etype == "DEATH":
            death_ages.append(int(e.get("age", 0)))
        if etype == "RUN_STARTED":
            desire = str(e.get("payload", {}).get("desire", "")).strip().casefold()
            if desire:
                desires[desire] += 1

    return AnalyticsSummary(
        total_events=sum(counts.values()),
        event_counts=dict(counts),
        avg_death_age=round(sum(death_ages) / len(death_ages)) if death_ages else None,
        top_desires=[DesireCount(desire=d, count=c) for d, c in desires.most_common(top)],
    )
