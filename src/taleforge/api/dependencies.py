"""Composition root for the HTTP surface.

Services are built once at startup from :class:`Settings` and stored on
``app.state``; route handlers receive them through the getters below, which
tests can replace with ``app.dependency_overrides``.
"""

from __future__ import annotations

import logging

from fastapi import Request

from taleforge.config import Settings
from taleforge.db.database import Database
from taleforge.db.store import FallbackGameStore, FileGameStore, SqlGameStore
from taleforge.llm.registry import get_provider
from taleforge.prompts.loader import PromptLoader
from taleforge.services.game import GameService
from taleforge.services.narrator import Narrator, RetryPolicy
from taleforge.services.prompt_builder import PromptBuilder
from taleforge.services.templates import TemplateLoader

log = logging.getLogger(__name__)


def build_game_service(config: Settings, db: Database) -> GameService:
    """Wire a :class:`GameService` from settings."""
    narrator = Narrator(
        get_provider(config.default_provider, config=config),
        max_tokens=config.narrator_max_tokens,
    )
    retry = RetryPolicy(
        attempts=config.narrator_retry_attempts,
        delay=config.narrator_retry_delay,
        timeout=config.narrator_timeout,
    )
    store = FallbackGameStore(
        primary=SqlGameStore(db),
        fallback=FileGameStore(config.fallback_store_dir),
    )
    log.info(
        "Game service ready: provider=%s, database=%s, fallback=%s",
        config.default_provider, db.url, config.fallback_store_dir,
    )
    return GameService(
        templates=TemplateLoader(config.templates_dir),
        store=store,
        narrator=narrator,
        retry=retry,
        prompt_builder=PromptBuilder(PromptLoader(config.prompts_dir)),
        base_attribute_value=config.base_attribute_value,
        opening_action=config.opening_action,
    )


def get_game_service(request: Request) -> GameService:
    return request.app.state.game_service


def get_template_loader(request: Request) -> TemplateLoader:
    return request.app.state.game_service.templates
