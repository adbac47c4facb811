"""Game session models — the mutable per-session state and its history."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from taleforge.models.template import SpecialDiceEvent


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ─── Dice ───────────────────────────────────────────────────────────────


class DiceOutcome(BaseModel):
    """Result of a triple-d6 roll.

    A triple match bypasses ordinary resolution, so ``sum`` and ``total``
    are left unset on that branch.
    """

    model_config = ConfigDict(frozen=True)

    values: List[int]
    is_match: bool
    matched_value: Optional[int] = None
    sum: Optional[int] = None
    modifier: int = 0
    total: Optional[int] = None
    attribute_key: Optional[str] = None
    attribute_value: Optional[int] = None
    special_event: Optional[SpecialDiceEvent] = None


# ─── Deltas ─────────────────────────────────────────────────────────────


class StatsDelta(BaseModel):
    """Signed changes reported by the narrator (or produced by an event)."""

    attributes: Dict[str, int] = Field(default_factory=dict)
    relationships: Dict[str, int] = Field(default_factory=dict)

    def is_empty(self) -> bool:
        return not self.attributes and not self.relationships


# ─── History ────────────────────────────────────────────────────────────

EventType = Literal["achievement", "relationship", "discovery", "decision", "consequence"]


class HistoryImpact(BaseModel):
    model_config = ConfigDict(frozen=True)

    attributes: Dict[str, int] = Field(default_factory=dict)
    relationships: Dict[str, int] = Field(default_factory=dict)
    unlocks: List[str] = Field(default_factory=list)


class HistoryEntry(BaseModel):
    """One completed turn. Written once, never modified."""

    model_config = ConfigDict(frozen=True)

    turn: int
    timestamp: datetime = Field(default_factory=_utcnow)
    action: str
    result: str
    stage_id: Optional[str] = None
    dice_roll: Optional[DiceOutcome] = None
    attribute_deltas: Dict[str, int] = Field(default_factory=dict)
    relationship_deltas: Dict[str, int] = Field(default_factory=dict)
    stage_transition_occurred: bool = False
    is_key_event: bool = False
    event_type: Optional[EventType] = None
    related_npcs: List[str] = Field(default_factory=list)
    impact: Optional[HistoryImpact] = None


# ─── Game state ─────────────────────────────────────────────────────────

GameOutcome = Literal["victory", "defeat", "abandoned"]


class GameState(BaseModel):
    """The full state of one game session."""

    session_id: str
    user_id: str
    template_id: str
    player_name: str
    scenario: str
    current_scene: str = ""
    turn: int = Field(default=0, ge=0)
    customizations: Dict[str, str] = Field(default_factory=dict)
    attributes: Dict[str, int] = Field(default_factory=dict)
    relationships: Dict[str, int] = Field(default_factory=dict)
    current_stage_id: Optional[str] = None
    completed_goals: Dict[str, List[str]] = Field(default_factory=dict)
    unlocked_skills: List[str] = Field(default_factory=list)
    is_game_ended: bool = False
    game_ending: Optional[str] = None
    outcome: Optional[GameOutcome] = None
    history: List[HistoryEntry] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    def goals_completed_in(self, stage_id: str) -> List[str]:
        return list(self.completed_goals.get(stage_id, []))

    @property
    def last_entry(self) -> Optional[HistoryEntry]:
        return self.history[-1] if self.history else None


class TurnResult(BaseModel):
    """What one ``perform_action`` call produced."""

    state: GameState
    narration: str
    dice: Optional[DiceOutcome] = None
    delta: StatsDelta = Field(default_factory=StatsDelta)
    transitioned: bool = False
