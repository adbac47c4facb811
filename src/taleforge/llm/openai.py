from __future__ import annotations

import logging

from openai import AsyncOpenAI

from taleforge.llm.base import LLMProvider

log = logging.getLogger(__name__)


class OpenAIProvider(LLMProvider):
    """LLM provider backed by the OpenAI chat completions API."""

    DEFAULT_MODEL = "gpt-4.1"

    MODELS = [
        "gpt-4.1",
        "gpt-4.1-mini",
        "gpt-4-turbo",
        "gpt-5",
        "gpt-5-mini",
    ]

    def __init__(
        self,
        api_key: str,
        model: str | None = None,
        temperature: float = 0.8,
        client: AsyncOpenAI | None = None,
    ):
        super().__init__(model=model or self.DEFAULT_MODEL, temperature=temperature)
        self._client = client or AsyncOpenAI(api_key=api_key)

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        temperature: float | None = None,
        max_tokens: int = 1500,
    ) -> str:
        log.info("OpenAI complete: model=%s, prompt_len=%d", self.model, len(user_prompt))
        try:
            response = await self._client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=temperature if temperature is not None else self.temperature,
                max_tokens=max_tokens,
            )
        except Exception as exc:
            log.error("OpenAI API error: %s", exc)
            raise
        result = response.choices[0].message.content or ""
        log.info("OpenAI response: %d chars", len(result))
        return result
