from __future__ import annotations

import logging

from anthropic import AsyncAnthropic

from taleforge.llm.base import LLMProvider

log = logging.getLogger(__name__)


class AnthropicProvider(LLMProvider):
    """LLM provider backed by the Anthropic messages API."""

    DEFAULT_MODEL = "claude-sonnet-4-5-20250929"

    MODELS = [
        "claude-opus-4-1-20250805",
        "claude-sonnet-4-5-20250929",
        "claude-haiku-4-5-20251001",
    ]

    def __init__(
        self,
        api_key: str,
        model: str | None = None,
        temperature: float = 0.8,
        client: AsyncAnthropic | None = None,
    ):
        super().__init__(model=model or self.DEFAULT_MODEL, temperature=temperature)
        self._client = client or AsyncAnthropic(api_key=api_key)

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        temperature: float | None = None,
        max_tokens: int = 1500,
    ) -> str:
        temp = temperature if temperature is not None else self.temperature
        temp = min(temp, 1.0)
        log.info("Anthropic complete: model=%s, prompt_len=%d", self.model, len(user_prompt))
        try:
            response = await self._client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=temp,
                system=system_prompt,
                messages=[{"role": "user", "content": user_prompt}],
            )
        except Exception as exc:
            log.error("Anthropic API error: %s", exc)
            raise
        result = "".join(b.text for b in response.content if getattr(b, "type", "") == "text")
        log.info("Anthropic response: %d chars", len(result))
        return result
