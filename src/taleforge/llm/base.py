from __future__ import annotations

from abc import ABC, abstractmethod


class LLMProvider(ABC):
    """Abstract base for all LLM providers (OpenAI, Anthropic)."""

    def __init__(self, model: str, temperature: float = 0.8):
        self.model = model
        self.temperature = temperature

    @abstractmethod
    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        temperature: float | None = None,
        max_tokens: int = 1500,
    ) -> str:
        """Return a plain-text completion."""
