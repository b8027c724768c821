from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Literal

EventType = Literal[
    "RUN_STARTED",
    "BIRTH",
    "TURN_PRESENTED",
    "CHOICE_APPLIED",
    "CLOSE_CALL",
    "PARENT_DEATH",
    "DEATH",
]


@dataclass(frozen=True, slots=True)
class RunEvent:
    type: EventType | str
    run_id: str
    session_id: str
    age: int
    payload: dict[str, Any]
    ts: datetime

    @staticmethod
    def now(*, type: EventType | str, run_id: str, session_id: str, age: int, payload: dict[str, Any]) -> "RunEvent":
        return RunEvent(
            type=type,
            run_id=run_id,
            session_id=session_id,
            age=age,
            payload=payload,
            ts=datetime.now(timezone.utc),
        )
