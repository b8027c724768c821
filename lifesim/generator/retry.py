from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from lifesim.errors import GeneratorUnavailableError
from lifesim.generator.parsing import Parsed, ParseResult

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay_s: float = 1.0
    max_jitter_s: float = 0.5

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

    def delay_for(self, attempt: int, *, rng: random.Random | None = None) -> float:
        """Backoff before the attempt after `attempt` (1-based): base * 2**(attempt-1) + jitter."""

        jitter = (rng or random).uniform(0.0, self.max_jitter_s) if self.max_jitter_s > 0 else 0.0
        return self.base_delay_s * 2 ** (attempt - 1) + jitter


def _client_error_status(e: Exception) -> int | None:
    """HTTP status of a provider 4xx error (openai.APIStatusError and friends), else None."""

    status = getattr(e, "status_code", None)
    if status is None:
        status = getattr(getattr(e, "response", None), "status_code", None)
    if isinstance(status, int) and 400 <= status < 500:
        return status
    return None


async def generate_with_retry(
    *,
    what: str,
    produce: Callable[[], Awaitable[str]],
    parse: Callable[[str], ParseResult[T]],
    policy: RetryPolicy,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    rng: random.Random | None = None,
) -> T:
    """Call the generator until its output parses, at most `policy.max_attempts` times.

    Transport errors and rejected payloads both consume an attempt. A provider
    4xx is not retried: the same request would be refused again. Exhaustion
    raises GeneratorUnavailableError carrying the last failure.
    """

    last_error = "no attempts made"
    for attempt in range(1, policy.max_attempts + 1):
        try:
            text = await produce()
        except Exception as e:
            # Provider/transport errors arrive as arbitrary exception types.
            last_error = f"{type(e).__name__}: {e}"
            status = _client_error_status(e)
            if status is not None:
                logger.error(
                    "%s attempt %d/%d refused with %d, not retrying: %s", what, attempt, policy.max_attempts, status, last_error
                )
                raise GeneratorUnavailableError(f"{what} refused by provider ({status}): {last_error}") from e
            logger.warning("%s attempt %d/%d failed: %s", what, attempt, policy.max_attempts, last_error)
        else:
            result = parse(text)
            if isinstance(result, Parsed):
                return result.value
            last_error = f"{type(result).__name__}: {result.error}"
            logger.warning("%s attempt %d/%d rejected: %s", what, attempt, policy.max_attempts, last_error)

        if attempt < policy.max_attempts:
            await sleep(policy.delay_for(attempt, rng=rng))

    logger.error("%s gave up after %d attempts: %s", what, policy.max_attempts, last_error)
    raise GeneratorUnavailableError(f"{what} failed after {policy.max_attempts} attempts: {last_error}")
