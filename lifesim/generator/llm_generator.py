from __future__ import annotations

import asyncio
import uuid
from collections.abc import Awaitable, Callable
from functools import partial
from typing import Any

from pydantic import BaseModel

from lifesim.api.models import Scenario
from lifesim.core.context import BaseAgentContext, RenderedContext, compose_context, render_payload
from lifesim.generator.base import Agent
from lifesim.generator.contract import BirthRequest, BirthScenario, EpilogueRequest, TurnRequest
from lifesim.generator.json_schema import BIRTH_SCHEMA, TURN_SCHEMA, JsonSchema
from lifesim.generator.parsing import parse_birth, parse_epilogue, parse_scenario
from lifesim.generator.retry import RetryPolicy, generate_with_retry
from lifesim.prompts import load_prompt, render_prompt


class LlmScenarioGenerator:
    """ScenarioGenerator backed by a chat agent with structured outputs."""

    def __init__(
        self,
        *,
        agent: Agent,
        policy: RetryPolicy | None = None,
        effect_bound: float = 0.25,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.agent = agent
        self.policy = policy or RetryPolicy()
        self.effect_bound = effect_bound
        self._sleep = sleep

    def _base(self) -> BaseAgentContext:
        return BaseAgentContext(system_prompt=render_prompt("system.txt", effect_bound=self.effect_bound))

    @staticmethod
    def _payload(request: BaseModel) -> str:
        # The nonce keeps identical snapshots from getting identical stories.
        body: dict[str, Any] = {"nonce": uuid.uuid4().hex, **request.model_dump(mode="json")}
        return render_payload(body)

    async def _ask(self, *, prompt: str, ctx: RenderedContext, schema: JsonSchema | None) -> str:
        action = await self.agent.propose_action(prompt=prompt, ctx=ctx, structured_output=schema)
        return action.content

    async def birth(self, request: BirthRequest) -> BirthScenario:
        ctx = compose_context(base=self._base(), instructions=load_prompt("birth.txt"))
        prompt = self._payload(request)
        return await generate_with_retry(
            what="birth generation",
            produce=partial(self._ask, prompt=prompt, ctx=ctx, schema=BIRTH_SCHEMA),
            parse=partial(parse_birth, effect_bound=self.effect_bound),
            policy=self.policy,
            sleep=self._sleep,
        )

    async def turn(self, request: TurnRequest) -> Scenario:
        ctx = compose_context(base=self._base(), instructions=load_prompt("turn.txt"))
        prompt = self._payload(request)
        return await generate_with_retry(
            what="turn generation",
            produce=partial(self._ask, prompt=prompt, ctx=ctx, schema=TURN_SCHEMA),
            parse=partial(parse_scenario, effect_bound=self.effect_bound),
            policy=self.policy,
            sleep=self._sleep,
        )

    async def epilogue(self, request: EpilogueRequest) -> str:
        ctx = compose_context(base=BaseAgentContext(system_prompt=load_prompt("epilogue.txt")))
        prompt = self._payload(request)
        return await generate_with_retry(
            what="epilogue generation",
            produce=partial(self._ask, prompt=prompt, ctx=ctx, schema=None),
            parse=parse_epilogue,
            policy=self.policy,
            sleep=self._sleep,
        )
