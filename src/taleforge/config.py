from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


_PACKAGE_DIR = Path(__file__).resolve().parent
_PROJECT_ROOT = _PACKAGE_DIR.parents[1]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=str(_PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- Provider API keys ---
    openai_api_key: str = ""
    anthropic_api_key: str = ""

    # --- Narrator provider & model ---
    default_provider: str = "openai"  # openai | anthropic
    default_model: str | None = None  # None = provider default

    narrator_temperature: float = 0.8
    narrator_max_tokens: int = 1500

    # Retry policy applied around every narrator call
    narrator_timeout: float = 60.0
    narrator_retry_attempts: int = 3
    narrator_retry_delay: float = 1.0

    # --- Data paths ---
    templates_dir: str = str(_PACKAGE_DIR / "data" / "templates")
    prompts_dir: str = str(_PACKAGE_DIR / "prompts" / "templates")

    # --- Persistence ---
    database_url: str = f"sqlite+aiosqlite:///{_PROJECT_ROOT / 'taleforge.db'}"
    fallback_store_dir: str = str(_PROJECT_ROOT / "data" / "sessions")

    # --- Game rules ---
    base_attribute_value: int = 5
    opening_action: str = "Begin the game"


settings = Settings()
