from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass
from typing import Any

from autogen import ConversableAgent, LLMConfig

from lifesim.core.context import RenderedContext
from lifesim.generator.base import AgentAction
from lifesim.generator.json_schema import JsonSchema


@dataclass(frozen=True, slots=True)
class OpenAICompatibleSettings:
    model: str
    base_url: str | None
    api_key: str | None


def settings_from_env(*, default_model: str) -> OpenAICompatibleSettings:
    return OpenAICompatibleSettings(
        model=os.environ.get("OPENAI_MODEL", default_model),
        # For Ollama, typically http://127.0.0.1:11434/v1
        base_url=os.environ.get("OPENAI_BASE_URL"),
        api_key=os.environ.get("OPENAI_API_KEY"),
    )


def llm_config_from_env(*, default_model: str) -> LLMConfig:
    s = settings_from_env(default_model=default_model)

    # Local OpenAI-compatible servers ignore the key, but the client insists on one.
    api_key = s.api_key or ("ollama" if s.base_url else None)
    if not api_key:
        raise RuntimeError(
            "Set OPENAI_API_KEY for hosted OpenAI, or set OPENAI_BASE_URL for a local OpenAI-compatible server"
        )

    config: dict[str, Any] = {"model": s.model, "api_key": api_key}
    if s.base_url:
        config["base_url"] = s.base_url
    return LLMConfig(config_list=[config])


def _extract_last_content(messages: object) -> str:
    if not isinstance(messages, list):
        return ""
    for msg in reversed(messages):
        if isinstance(msg, dict):
            content = msg.get("content")
            if isinstance(content, str) and content.strip():
                return content.strip()
    return ""


@dataclass(slots=True)
class Ag2ChatAgent:
    """Single-shot AG2 (`autogen`) chat call.

    The AG2 run is synchronous, so it is pushed onto a worker thread to keep the
    event loop free while the model thinks.
    """

    name: str
    model: str

    def _run_sync(self, *, prompt: str, system_prompt: str, structured_output: JsonSchema | None) -> str:
        agent = ConversableAgent(
            name=self.name,
            system_message=system_prompt,
            llm_config=llm_config_from_env(default_model=self.model),
            human_input_mode="NEVER",
        )

        extra: dict[str, Any] = {}
        if structured_output is not None:
            extra["response_format"] = {
                "type": "json_schema",
                "json_schema": {
                    "name": structured_output.name,
                    "schema": structured_output.schema,
                    "strict": structured_output.strict,
                },
            }

        result = agent.run(message=prompt, max_turns=1, **extra)
        result.process()

        text = _extract_last_content(list(result.messages))
        if not text and isinstance(result.summary, str):
            text = result.summary.strip()
        return text

    async def propose_action(
        self,
        *,
        prompt: str,
        ctx: RenderedContext,
        structured_output: JsonSchema | None = None,
    ) -> AgentAction:
        text = await asyncio.to_thread(
            self._run_sync,
            prompt=prompt,
            system_prompt=ctx.system_prompt,
            structured_output=structured_output,
        )
        metadata: dict[str, Any] = {"model": self.model}
        if structured_output is not None:
            metadata["schema"] = structured_output.name
        return AgentAction(kind="chat", content=text, metadata=metadata)
