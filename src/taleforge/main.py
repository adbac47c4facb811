"""Taleforge — AI-narrated role-playing engine API.

Run with:  uvicorn taleforge.main:app --reload
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

# Configure logging for all taleforge modules
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from taleforge.api.dependencies import build_game_service
from taleforge.api.games import router as games_router
from taleforge.api.templates import router as templates_router
from taleforge.config import Settings, settings
from taleforge.db.database import Database
from taleforge.errors import (
    GameValidationError,
    NarratorError,
    PersistenceError,
    SessionNotFoundError,
    TemplateNotFoundError,
)
from taleforge.services.game import GameService

log = logging.getLogger(__name__)


def create_app(
    config: Settings | None = None,
    game_service: GameService | None = None,
) -> FastAPI:
    """Build the FastAPI app.

    When *game_service* is given it is used as-is and no database is opened;
    otherwise the service is wired from *config* at startup.
    """
    config = config or settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup / shutdown lifecycle."""
        db = None
        if game_service is None:
            db = Database(config.database_url)
            await db.init()
            app.state.game_service = build_game_service(config, db)
        yield
        if db is not None:
            await db.dispose()

    app = FastAPI(
        title="Taleforge",
        description=(
            "Narrative role-playing engine: AI-narrated turns, dice resolution, "
            "attribute and relationship tracking, and stage progression."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )
    if game_service is not None:
        app.state.game_service = game_service

    # ── Error mapping ───────────────────────────────────────────────────
    @app.exception_handler(GameValidationError)
    async def _validation_error(request: Request, exc: GameValidationError):
        not_found = isinstance(exc, (SessionNotFoundError, TemplateNotFoundError))
        status = 404 if not_found else 400
        return JSONResponse(status_code=status, content={"detail": str(exc)})

    @app.exception_handler(NarratorError)
    async def _narrator_error(request: Request, exc: NarratorError):
        log.error("Narrator failure on %s: %s", request.url.path, exc)
        return JSONResponse(status_code=502, content={"detail": str(exc)})

    @app.exception_handler(PersistenceError)
    async def _persistence_error(request: Request, exc: PersistenceError):
        log.error("Persistence failure on %s: %s", request.url.path, exc)
        return JSONResponse(status_code=503, content={"detail": str(exc)})

    # ── API routers ─────────────────────────────────────────────────────
    app.include_router(templates_router)
    app.include_router(games_router)

    return app


app = create_app()


def run() -> None:
    """Console entry point: serve the API with uvicorn."""
    import uvicorn

    uvicorn.run("taleforge.main:app", host="127.0.0.1", port=8000)
