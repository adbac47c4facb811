"""Game state persistence.

Every store keeps the full :class:`GameState` document keyed by session id;
nothing in the engine depends on the storage technology.

    SqlGameStore       SQLAlchemy async: one ``game_sessions`` row per game,
                       plus ``game_history`` audit rows for each turn.
    FileGameStore      one JSON file per session in a directory.
    FallbackGameStore  writes to a primary store and degrades to a local
                       fallback store when the primary fails.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Protocol

from pydantic import ValidationError
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from taleforge.db.database import Database
from taleforge.db.tables import DBGameHistory, DBGameSession
from taleforge.errors import PersistenceError
from taleforge.models.game import GameState

log = logging.getLogger(__name__)


class GameStore(Protocol):
    async def load(self, session_id: str) -> Optional[GameState]: ...

    async def save(self, state: GameState) -> None: ...

    async def list_for_user(self, user_id: str) -> List[GameState]: ...


# ---------------------------------------------------------------------------
# SQL
# ---------------------------------------------------------------------------


class SqlGameStore:
    def __init__(self, db: Database):
        self._db = db

    async def load(self, session_id: str) -> Optional[GameState]:
        try:
            async with self._db.session() as session:
                row = await self._get_row(session, session_id)
                if row is None:
                    return None
                return GameState.model_validate_json(row.state_json)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Could not load game '{session_id}': {exc}") from exc

    async def save(self, state: GameState) -> None:
        try:
            async with self._db.session() as session:
                row = await self._get_row(session, state.session_id)
                if row is None:
                    row = DBGameSession(
                        session_key=state.session_id,
                        user_id=state.user_id,
                        template_id=state.template_id,
                        created_at=state.created_at,
                    )
                    session.add(row)
                    await session.flush()
                row.turn = state.turn
                row.is_game_ended = state.is_game_ended
                row.state_json = state.model_dump_json()
                row.updated_at = datetime.now(timezone.utc)

                stored_turn = await session.scalar(
                    select(func.max(DBGameHistory.turn_number)).where(
                        DBGameHistory.session_id == row.id
                    )
                )
                for entry in state.history:
                    if stored_turn is not None and entry.turn <= stored_turn:
                        continue
                    session.add(DBGameHistory(
                        session_id=row.id,
                        turn_number=entry.turn,
                        action=entry.action,
                        result=entry.result,
                        dice_json=entry.dice_roll.model_dump_json() if entry.dice_roll else None,
                        state_changes_json=json.dumps({
                            "attributes": entry.attribute_deltas,
                            "relationships": entry.relationship_deltas,
                            "stage_id": entry.stage_id,
                            "stage_transition_occurred": entry.stage_transition_occurred,
                        }),
                        is_key_event=entry.is_key_event,
                        event_type=entry.event_type,
                        timestamp=entry.timestamp,
                    ))
                await session.commit()
        except SQLAlchemyError as exc:
            raise PersistenceError(
                f"Could not save game '{state.session_id}': {exc}"
            ) from exc
        log.info("Saved game %s (turn %d) to database", state.session_id, state.turn)

    async def list_for_user(self, user_id: str) -> List[GameState]:
        try:
            async with self._db.session() as session:
                result = await session.execute(
                    select(DBGameSession)
                    .where(DBGameSession.user_id == user_id)
                    .order_by(DBGameSession.updated_at.desc())
                )
                return [
                    GameState.model_validate_json(row.state_json)
                    for row in result.scalars().all()
                ]
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Could not list games for '{user_id}': {exc}") from exc

    @staticmethod
    async def _get_row(session, session_id: str) -> Optional[DBGameSession]:
        result = await session.execute(
            select(DBGameSession).where(DBGameSession.session_key == session_id)
        )
        return result.scalar_one_or_none()


# ---------------------------------------------------------------------------
# JSON files
# ---------------------------------------------------------------------------


class FileGameStore:
    """Flat JSON files: ``{base}/{session_id}.json``."""

    def __init__(self, base_path: str | Path):
        self._base = Path(base_path)

    def _path(self, session_id: str) -> Path:
        if not session_id or "/" in session_id or "\\" in session_id or session_id.startswith("."):
            raise PersistenceError(f"Invalid session id: {session_id!r}")
        return self._base / f"{session_id}.json"

    async def load(self, session_id: str) -> Optional[GameState]:
        path = self._path(session_id)
        if not path.exists():
            return None
        try:
            return GameState.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as exc:
            raise PersistenceError(f"Could not read game '{session_id}': {exc}") from exc

    async def save(self, state: GameState) -> None:
        path = self._path(state.session_id)
        tmp = path.with_suffix(".json.tmp")
        try:
            self._base.mkdir(parents=True, exist_ok=True)
            tmp.write_text(state.model_dump_json(indent=2), encoding="utf-8")
            tmp.replace(path)
        except OSError as exc:
            raise PersistenceError(
                f"Could not write game '{state.session_id}': {exc}"
            ) from exc
        log.info("Saved game %s (turn %d) to %s", state.session_id, state.turn, path)

    async def list_for_user(self, user_id: str) -> List[GameState]:
        if not self._base.is_dir():
            return []
        games = []
        for path in self._base.glob("*.json"):
            try:
                state = GameState.model_validate_json(path.read_text(encoding="utf-8"))
            except (OSError, ValidationError) as exc:
                log.warning("Skipping unreadable session file %s: %s", path.name, exc)
                continue
            if state.user_id == user_id:
                games.append(state)
        return sorted(games, key=lambda s: s.updated_at, reverse=True)


# ---------------------------------------------------------------------------
# Primary + local fallback
# ---------------------------------------------------------------------------


class FallbackGameStore:
    """Durable primary store with a local fallback store behind it.

    Writes go to the primary; if it fails the state is written to the
    fallback instead and a warning is logged. Only when both fail does the
    caller see a :class:`PersistenceError`.

    Reads consult both stores and return the more recent copy: the higher
    ``turn`` wins, then the later ``updated_at`` (ending a game does not
    advance the turn). Exact ties prefer the primary.
    """

    def __init__(self, primary: GameStore, fallback: GameStore):
        self._primary = primary
        self._fallback = fallback

    async def load(self, session_id: str) -> Optional[GameState]:
        primary = await self._try_load(self._primary, session_id, "primary")
        fallback = await self._try_load(self._fallback, session_id, "fallback")
        chosen = self._prefer(primary, fallback)
        if chosen is not None and chosen is fallback and primary is not None:
            log.info("Using fallback copy of game %s (turn %d, primary turn %d)",
                     session_id, fallback.turn, primary.turn)
        return chosen

    async def save(self, state: GameState) -> None:
        try:
            await self._primary.save(state)
            return
        except PersistenceError as exc:
            log.warning("Primary store failed for game %s, using fallback: %s",
                         state.session_id, exc)
        await self._fallback.save(state)

    async def list_for_user(self, user_id: str) -> List[GameState]:
        found: Dict[str, Dict[str, GameState]] = {}
        for store, label in ((self._primary, "primary"), (self._fallback, "fallback")):
            try:
                games = await store.list_for_user(user_id)
            except PersistenceError as exc:
                log.warning("Could not list games from %s store: %s", label, exc)
                games = []
            found[label] = {state.session_id: state for state in games}

        primary, fallback = found["primary"], found["fallback"]
        merged = [
            self._prefer(primary.get(sid), fallback.get(sid))
            for sid in dict.fromkeys([*primary, *fallback])
        ]
        return sorted(merged, key=lambda s: s.updated_at, reverse=True)

    @staticmethod
    def _prefer(
        primary: Optional[GameState], fallback: Optional[GameState]
    ) -> Optional[GameState]:
        if primary is None or fallback is None:
            return fallback if primary is None else primary
        if (fallback.turn, fallback.updated_at) > (primary.turn, primary.updated_at):
            return fallback
        return primary

    @staticmethod
    async def _try_load(store: GameStore, session_id: str, label: str) -> Optional[GameState]:
        try:
            return await store.load(session_id)
        except PersistenceError as exc:
            log.warning("Could not load game %s from %s store: %s", session_id, label, exc)
            return None
