from __future__ import annotations

import logging

from taleforge.config import Settings, settings as default_settings
from taleforge.llm.anthropic import AnthropicProvider
from taleforge.llm.base import LLMProvider
from taleforge.llm.openai import OpenAIProvider

log = logging.getLogger(__name__)

_PROVIDER_MAP = {
    "openai": (OpenAIProvider, "openai_api_key"),
    "anthropic": (AnthropicProvider, "anthropic_api_key"),
}


def get_provider(
    name: str | None = None,
    model: str | None = None,
    temperature: float | None = None,
    config: Settings | None = None,
) -> LLMProvider:
    """Instantiate an LLM provider by name and optional explicit model.

    Parameters
    ----------
    name:
        ``"openai"`` | ``"anthropic"``. Defaults to ``config.default_provider``.
    model:
        Explicit model id. Falls back to ``config.default_model`` and then
        to the provider's default.
    temperature:
        Override; falls back to ``config.narrator_temperature``.
    config:
        Settings to read keys and defaults from (the global settings when None).
    """
    config = config or default_settings
    name = name or config.default_provider
    if name not in _PROVIDER_MAP:
        raise ValueError(
            f"Unknown provider '{name}'. Choose from: {list(_PROVIDER_MAP)}"
        )

    cls, key_attr = _PROVIDER_MAP[name]
    api_key = getattr(config, key_attr)
    if not api_key:
        raise ValueError(
            f"API key for provider '{name}' is not configured "
            f"(set {key_attr.upper()} in .env)."
        )

    chosen_model = model or config.default_model or cls.DEFAULT_MODEL
    temp = temperature if temperature is not None else config.narrator_temperature

    log.info("Creating %s provider: model=%s, temperature=%.2f", name, chosen_model, temp)
    return cls(api_key=api_key, model=chosen_model, temperature=temp)
