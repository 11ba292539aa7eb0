"""Async content generator backed by the blocking LLM runner."""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from typing import Awaitable, Callable

from ..errors import is_retryable
from ..logging import get_logger
from ..prompting.constants import SYSTEM_PROMPT
from .runner import LLMRunner


@dataclass
class RetryPolicy:
    """Exponential backoff for retryable-looking failures."""

    max_retries: int = 0
    initial_delay: float = 1.0
    max_delay: float = 30.0
    multiplier: float = 2.0
    jitter: bool = True

    def delay_for(self, attempt: int) -> float:
        delay = min(self.initial_delay * (self.multiplier ** attempt), self.max_delay)
        if self.jitter:
            delay *= random.uniform(0.5, 1.0)
        return delay


class LLMContentGenerator:
    """Runs prompts on an :class:`LLMRunner` in a worker thread."""

    def __init__(
        self,
        runner: LLMRunner,
        *,
        system: str | None = SYSTEM_PROMPT,
        retry: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.runner = runner
        self.system = system
        self.retry = retry or RetryPolicy()
        self._sleep = sleep
        self.logger = get_logger("llm")

    async def generate(self, prompt: str) -> str:
        attempt = 0
        while True:
            try:
                return await asyncio.to_thread(self.runner.run, prompt, system=self.system)
            except Exception as exc:
                if attempt >= self.retry.max_retries or not is_retryable(exc):
                    raise
                delay = self.retry.delay_for(attempt)
                attempt += 1
                self.logger.warning(
                    "LLM call failed (%s); retry %d/%d in %.1fs",
                    exc,
                    attempt,
                    self.retry.max_retries,
                    delay,
                )
                await self._sleep(delay)


__all__ = ["LLMContentGenerator", "RetryPolicy"]
