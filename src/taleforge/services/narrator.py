"""Narrator collaborator: turns a prompt into story text via an LLM provider.

The engine treats the narrator as a black box. Calls are bounded by a
:class:`RetryPolicy` (fixed number of attempts, fixed delay between them,
per-attempt timeout); when the policy is exhausted a :class:`NarratorError`
reaches the caller and no game state has been touched.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from pydantic import BaseModel, Field

from taleforge.errors import NarratorError
from taleforge.llm.base import LLMProvider

log = logging.getLogger(__name__)

T = TypeVar("T")

GAME_MASTER_SYSTEM_PROMPT = (
    "You are a skilled, fair game master narrating an interactive story. "
    "You respect dice outcomes, keep continuity with earlier turns, and always "
    "finish with the requested [STATS] block."
)


class NarrationRequest(BaseModel):
    prompt: str
    max_tokens: int = 1500


class NarrationReply(BaseModel):
    text: str


class RetryPolicy(BaseModel):
    """Bounded retries with a fixed delay and a per-attempt timeout."""

    attempts: int = Field(default=3, ge=1)
    delay: float = Field(default=1.0, ge=0)
    timeout: float | None = Field(default=60.0, gt=0)

    async def run(self, call: Callable[[], Awaitable[T]]) -> T:
        """Await ``call()`` until it succeeds or the attempts run out.

        Only :class:`NarratorError` and timeouts are retried; the last one
        is re-raised as a :class:`NarratorError`.
        """
        last_error: Exception | None = None
        for attempt in range(1, self.attempts + 1):
            try:
                if self.timeout is None:
                    return await call()
                return await asyncio.wait_for(call(), timeout=self.timeout)
            except asyncio.TimeoutError as exc:
                last_error = NarratorError(f"Narrator timed out after {self.timeout}s")
                last_error.__cause__ = exc
            except NarratorError as exc:
                last_error = exc

            if attempt < self.attempts:
                log.warning(
                    "Narrator attempt %d/%d failed: %s; retrying in %.1fs",
                    attempt, self.attempts, last_error, self.delay,
                )
                await asyncio.sleep(self.delay)

        log.error("Narrator failed after %d attempts: %s", self.attempts, last_error)
        raise last_error  # type: ignore[misc]


class Narrator:
    """Adapter from :class:`LLMProvider` to the narrator contract."""

    def __init__(
        self,
        llm: LLMProvider,
        system_prompt: str = GAME_MASTER_SYSTEM_PROMPT,
        max_tokens: int = 1500,
    ):
        self._llm = llm
        self._system_prompt = system_prompt
        self.max_tokens = max_tokens

    async def narrate(self, request: NarrationRequest) -> NarrationReply:
        try:
            text = await self._llm.complete(
                system_prompt=self._system_prompt,
                user_prompt=request.prompt,
                max_tokens=request.max_tokens,
            )
        except Exception as exc:
            raise NarratorError(f"Narrator call failed: {exc}") from exc
        if not text or not text.strip():
            raise NarratorError("Narrator returned an empty reply")
        return NarrationReply(text=text)
