from __future__ import annotations

import os
from typing import cast

from lifesim.generator.ag2_backend import Ag2ChatAgent
from lifesim.generator.base import Agent
from lifesim.generator.contract import ScenarioGenerator
from lifesim.generator.llm_generator import LlmScenarioGenerator
from lifesim.settings import Settings


def create_default_agent(*, name: str, default_model: str) -> Agent:
    model = os.environ.get("OPENAI_MODEL", default_model)
    return cast(Agent, Ag2ChatAgent(name=name, model=model))


def create_default_generator(*, settings: Settings) -> ScenarioGenerator:
    """LLM-backed generator configured from env (see ag2_backend.settings_from_env)."""

    agent = create_default_agent(name="life-narrator", default_model=settings.default_model)
    return LlmScenarioGenerator(agent=agent, policy=settings.retry, effect_bound=settings.engine.effect_bound)
