"""Tests for taleforge.db.store — file, SQL and fallback stores."""

from datetime import datetime, timedelta, timezone
from typing import List, Optional

import pytest
from sqlalchemy import func, select

from taleforge.db.database import Database
from taleforge.db.store import FallbackGameStore, FileGameStore, SqlGameStore
from taleforge.db.tables import DBGameHistory
from taleforge.errors import PersistenceError
from taleforge.models.game import GameState, HistoryEntry


def _state(session_id: str = "abc123", user_id: str = "u1", turn: int = 0, **updates) -> GameState:
    history = [HistoryEntry(turn=t, action=f"act {t}", result=f"res {t}") for t in range(1, turn + 1)]
    state = GameState(
        session_id=session_id, user_id=user_id, template_id="academy", player_name="Ada",
        scenario="x", turn=turn, attributes={"intelligence": 5}, history=history,
    )
    return state.model_copy(update=updates)


class BrokenStore:
    """A store whose every call fails."""

    async def load(self, session_id: str) -> Optional[GameState]:
        raise PersistenceError("down")

    async def save(self, state: GameState) -> None:
        raise PersistenceError("down")

    async def list_for_user(self, user_id: str) -> List[GameState]:
        raise PersistenceError("down")


# ---------------------------------------------------------------------------
# FileGameStore
# ---------------------------------------------------------------------------

class TestFileGameStore:
    async def test_round_trip(self, tmp_path) -> None:
        store = FileGameStore(tmp_path)
        state = _state(turn=2)
        await store.save(state)
        assert await store.load("abc123") == state
        assert (tmp_path / "abc123.json").exists()

    async def test_missing_is_none(self, tmp_path) -> None:
        assert await FileGameStore(tmp_path).load("nothing") is None

    async def test_rejects_path_like_ids(self, tmp_path) -> None:
        with pytest.raises(PersistenceError):
            await FileGameStore(tmp_path).load("../etc/passwd")

    async def test_corrupt_file(self, tmp_path) -> None:
        (tmp_path / "abc123.json").write_text("{oops")
        with pytest.raises(PersistenceError):
            await FileGameStore(tmp_path).load("abc123")

    async def test_list_filters_by_user_newest_first(self, tmp_path) -> None:
        store = FileGameStore(tmp_path)
        now = datetime.now(timezone.utc)
        await store.save(_state("old", updated_at=now - timedelta(hours=1)))
        await store.save(_state("new", updated_at=now))
        await store.save(_state("theirs", user_id="u2"))
        games = await store.list_for_user("u1")
        assert [g.session_id for g in games] == ["new", "old"]


# ---------------------------------------------------------------------------
# SqlGameStore
# ---------------------------------------------------------------------------

@pytest.fixture
async def db(tmp_path):
    database = Database(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await database.init()
    yield database
    await database.dispose()


class TestSqlGameStore:
    async def test_round_trip(self, db) -> None:
        store = SqlGameStore(db)
        state = _state(turn=1)
        await store.save(state)
        loaded = await store.load("abc123")
        assert loaded == state

    async def test_missing_is_none(self, db) -> None:
        assert await SqlGameStore(db).load("nothing") is None

    async def test_update_overwrites_and_appends_history_once(self, db) -> None:
        store = SqlGameStore(db)
        await store.save(_state(turn=1))
        await store.save(_state(turn=2))
        await store.save(_state(turn=2))
        assert (await store.load("abc123")).turn == 2
        async with db.session() as session:
            count = await session.scalar(select(func.count()).select_from(DBGameHistory))
        assert count == 2

    async def test_list_for_user(self, db) -> None:
        store = SqlGameStore(db)
        await store.save(_state("a1"))
        await store.save(_state("a2"))
        await store.save(_state("b1", user_id="u2"))
        games = await store.list_for_user("u1")
        assert {g.session_id for g in games} == {"a1", "a2"}


# ---------------------------------------------------------------------------
# FallbackGameStore
# ---------------------------------------------------------------------------

class TestFallbackGameStore:
    async def test_writes_primary_when_healthy(self, tmp_path) -> None:
        primary = FileGameStore(tmp_path / "primary")
        fallback = FileGameStore(tmp_path / "fallback")
        await FallbackGameStore(primary, fallback).save(_state())
        assert await primary.load("abc123") is not None
        assert await fallback.load("abc123") is None

    async def test_falls_back_when_primary_fails(self, tmp_path) -> None:
        fallback = FileGameStore(tmp_path / "fallback")
        store = FallbackGameStore(BrokenStore(), fallback)
        await store.save(_state(turn=1))
        assert (await store.load("abc123")).turn == 1

    async def test_both_failing_raises(self) -> None:
        with pytest.raises(PersistenceError):
            await FallbackGameStore(BrokenStore(), BrokenStore()).save(_state())

    async def test_load_prefers_higher_turn(self, tmp_path) -> None:
        primary = FileGameStore(tmp_path / "primary")
        fallback = FileGameStore(tmp_path / "fallback")
        await primary.save(_state(turn=1))
        await fallback.save(_state(turn=3))
        assert (await FallbackGameStore(primary, fallback).load("abc123")).turn == 3

    async def test_load_tie_prefers_primary(self, tmp_path) -> None:
        primary = FileGameStore(tmp_path / "primary")
        fallback = FileGameStore(tmp_path / "fallback")
        base = _state(turn=2)
        await primary.save(base.model_copy(update={"player_name": "Primary"}))
        await fallback.save(base.model_copy(update={"player_name": "Fallback"}))
        assert (await FallbackGameStore(primary, fallback).load("abc123")).player_name == "Primary"

    async def test_list_merges_stores(self, tmp_path) -> None:
        primary = FileGameStore(tmp_path / "primary")
        fallback = FileGameStore(tmp_path / "fallback")
        await primary.save(_state("a1", turn=1))
        await fallback.save(_state("a1", turn=2))
        await fallback.save(_state("a2"))
        games = await FallbackGameStore(primary, fallback).list_for_user("u1")
        by_id = {g.session_id: g.turn for g in games}
        assert by_id == {"a1": 2, "a2": 0}

    async def test_load_same_turn_prefers_later_update(self, tmp_path) -> None:
        primary = FileGameStore(tmp_path / "primary")
        fallback = FileGameStore(tmp_path / "fallback")
        running = _state(turn=2)
        await primary.save(running)
        ended = running.model_copy(update={
            "is_game_ended": True,
            "outcome": "abandoned",
            "updated_at": running.updated_at + timedelta(seconds=5),
        })
        await fallback.save(ended)
        store = FallbackGameStore(primary, fallback)
        assert (await store.load("abc123")).is_game_ended
        games = await store.list_for_user("u1")
        assert [g.is_game_ended for g in games] == [True]
