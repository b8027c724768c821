from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True, slots=True)
class BaseAgentContext:
    """Global instructions shared by every generator call."""

    system_prompt: str
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class RenderedContext:
    """Final, merged context passed into the LLM agent."""

    system_prompt: str

    def as_messages(self) -> list[dict[str, str]]:
        return [{"role": "system", "content": self.system_prompt}]


def compose_context(*, base: BaseAgentContext, instructions: str = "") -> RenderedContext:
    parts = [base.system_prompt.strip(), instructions.strip()]
    return RenderedContext(system_prompt="\n\n".join(p for p in parts if p).strip())


def render_payload(payload: dict[str, Any]) -> str:
    """User message body: the run snapshot as compact JSON."""

    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"), default=str)
