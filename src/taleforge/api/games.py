from __future__ import annotations

import logging
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from taleforge.api.dependencies import get_game_service
from taleforge.errors import NarratorError
from taleforge.services.game import GameService

log = logging.getLogger(__name__)

router = APIRouter(prefix="/api/games", tags=["games"])


class CreateGameRequest(BaseModel):
    user_id: str
    template_id: str
    player_name: str
    customizations: Dict[str, str] = Field(default_factory=dict)
    begin: bool = False  # narrate the opening scene as turn 1


class PerformActionRequest(BaseModel):
    action: str
    skill_id: Optional[str] = None
    dice_values: Optional[List[int]] = None


class RollDiceRequest(BaseModel):
    skill_id: str
    values: Optional[List[int]] = None


@router.post("")
async def create_game(
    body: CreateGameRequest,
    svc: GameService = Depends(get_game_service),
):
    """Create a new game session (optionally narrating its opening)."""
    state = await svc.create_game(
        body.user_id, body.template_id, body.player_name, body.customizations,
    )
    if body.begin:
        try:
            result = await svc.begin_game(state.session_id)
        except NarratorError as exc:
            # The game is already stored; only its opening turn is missing.
            log.warning("Opening turn failed for game %s: %s", state.session_id, exc)
            return {"state": state.model_dump(mode="json"), "narration": None, "error": str(exc)}
        return {"state": result.state.model_dump(mode="json"), "narration": result.narration}
    return {"state": state.model_dump(mode="json"), "narration": None}


@router.get("")
async def list_games(
    user_id: str,
    svc: GameService = Depends(get_game_service),
):
    """List a user's game sessions, most recently played first."""
    games = await svc.list_games(user_id)
    return [
        {
            "session_id": g.session_id,
            "template_id": g.template_id,
            "player_name": g.player_name,
            "turn": g.turn,
            "current_stage_id": g.current_stage_id,
            "is_game_ended": g.is_game_ended,
            "outcome": g.outcome,
            "updated_at": g.updated_at.isoformat(),
        }
        for g in games
    ]


@router.get("/{session_id}")
async def get_game(
    session_id: str,
    svc: GameService = Depends(get_game_service),
):
    """Get the full state of a game session."""
    state = await svc.load_game(session_id)
    return state.model_dump(mode="json")


@router.post("/{session_id}/actions")
async def perform_action(
    session_id: str,
    body: PerformActionRequest,
    svc: GameService = Depends(get_game_service),
):
    """Play one turn."""
    result = await svc.perform_action(
        session_id, body.action, skill_id=body.skill_id, dice_values=body.dice_values,
    )
    return result.model_dump(mode="json")


@router.post("/{session_id}/dice")
async def roll_dice(
    session_id: str,
    body: RollDiceRequest,
    svc: GameService = Depends(get_game_service),
):
    """Roll a skill check without playing a turn."""
    outcome = await svc.roll_dice(session_id, body.skill_id, body.values)
    return outcome.model_dump(mode="json")


@router.post("/{session_id}/end")
async def end_game(
    session_id: str,
    svc: GameService = Depends(get_game_service),
):
    """End the game at the player's request."""
    state = await svc.end_game(session_id)
    return state.model_dump(mode="json")
