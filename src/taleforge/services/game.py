from __future__ import annotations

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Dict, List, Optional, Sequence

from taleforge.db.store import GameStore
from taleforge.errors import GameEndedError, GameValidationError, SessionNotFoundError
from taleforge.models.game import (
    DiceOutcome,
    GameState,
    HistoryEntry,
    HistoryImpact,
    TurnResult,
)
from taleforge.models.template import Template
from taleforge.parsing.stats_parser import DeltaParser, StatsBlockParser
from taleforge.services.dice import DiceService
from taleforge.services.narrator import NarrationRequest, Narrator, RetryPolicy
from taleforge.services.progression import ProgressionResult, StageEvaluator
from taleforge.services.prompt_builder import PromptBuilder
from taleforge.services.state import (
    apply_deltas,
    apply_special_event_effect,
    net_changes,
)
from taleforge.services.templates import TemplateLoader

log = logging.getLogger(__name__)

ABANDONED_ENDING = "The player ended the game."


class GameService:
    """Session orchestration: one player action in, one persisted turn out.

    A turn runs as a critical section per session id:

        load state → resolve dice → build prompt → narrator (with retries)
        → parse stats → apply special event + narrator deltas
        → stage progression → turn + 1 → append history → persist

    Nothing is written until the narrator has replied, so a failed or
    timed-out narrator call leaves the stored game exactly as it was.
    Different sessions never share mutable state and run concurrently.
    """

    def __init__(
        self,
        templates: TemplateLoader,
        store: GameStore,
        narrator: Narrator,
        retry: RetryPolicy | None = None,
        *,
        dice: DiceService | None = None,
        parser: DeltaParser | None = None,
        evaluator: StageEvaluator | None = None,
        prompt_builder: PromptBuilder | None = None,
        base_attribute_value: int = 5,
        opening_action: str = "Begin the game",
    ):
        self._templates = templates
        self._store = store
        self._narrator = narrator
        self._retry = retry or RetryPolicy()
        self._dice = dice or DiceService()
        self._parser = parser or StatsBlockParser()
        self._evaluator = evaluator or StageEvaluator()
        self._prompts = prompt_builder or PromptBuilder()
        self._base_attribute_value = base_attribute_value
        self._opening_action = opening_action
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    @property
    def templates(self) -> TemplateLoader:
        return self._templates

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    async def create_game(
        self,
        user_id: str,
        template_id: str,
        player_name: str,
        customizations: Dict[str, str] | None = None,
    ) -> GameState:
        """Create and persist a new game at turn 0."""
        if not user_id:
            raise GameValidationError("user_id is required")
        if not player_name or not player_name.strip():
            raise GameValidationError("Player name is required")
        template = self._templates.load(template_id)
        customizations = dict(customizations or {})

        state = GameState(
            session_id=uuid.uuid4().hex[:12],
            user_id=user_id,
            template_id=template.id,
            player_name=player_name.strip(),
            scenario=template.scenario,
            current_scene=template.starting_point,
            customizations=customizations,
            attributes=self.initial_attributes(template, customizations),
            relationships={npc.name: npc.initial_relationship for npc in template.iter_npcs()},
            current_stage_id=template.starting_stage_id(),
        )
        await self._store.save(state)
        log.info(
            "Created game %s: user=%s, template=%s, attributes=%s",
            state.session_id, user_id, template.id, state.attributes,
        )
        return state

    def initial_attributes(
        self, template: Template, customizations: Dict[str, str]
    ) -> Dict[str, int]:
        """Base value for every attribute, shifted by the chosen customizations."""
        attributes = {attr: self._base_attribute_value for attr in template.attributes}
        for key, option in customizations.items():
            customization = template.player_customizations.get(key)
            if customization is None:
                raise GameValidationError(
                    f"Unknown customization '{key}'. "
                    f"Available: {list(template.player_customizations)}"
                )
            if customization.options and option not in customization.options:
                raise GameValidationError(
                    f"Invalid option '{option}' for '{key}'. "
                    f"Choose from: {customization.options}"
                )
            for attr, change in customization.impact.get(option, {}).items():
                attributes[attr] = attributes.get(attr, 0) + change
        return attributes

    async def load_game(self, session_id: str) -> GameState:
        state = await self._store.load(session_id)
        if state is None:
            raise SessionNotFoundError(f"No game session with id '{session_id}'")
        return state

    async def list_games(self, user_id: str) -> List[GameState]:
        return await self._store.list_for_user(user_id)

    async def end_game(self, session_id: str) -> GameState:
        """End a running game at the player's request (no-op if already ended)."""
        async with self._lock(session_id):
            state = await self.load_game(session_id)
            if state.is_game_ended:
                return state
            state = state.model_copy(update={
                "is_game_ended": True,
                "game_ending": ABANDONED_ENDING,
                "outcome": "abandoned",
                "updated_at": datetime.now(timezone.utc),
            })
            await self._store.save(state)
            log.info("Game %s abandoned at turn %d", session_id, state.turn)
            return state

    async def begin_game(self, session_id: str) -> TurnResult:
        """Narrate the opening scene as the first turn."""
        return await self.perform_action(session_id, self._opening_action)

    async def roll_dice(
        self, session_id: str, skill_id: str, values: Optional[Sequence[int]] = None
    ) -> DiceOutcome:
        """Resolve a skill check for the game without taking a turn."""
        state = await self.load_game(session_id)
        template = self._templates.load(state.template_id)
        return self._dice.roll_for_skill(template, state, skill_id, values)

    # ------------------------------------------------------------------
    # Turn
    # ------------------------------------------------------------------

    async def perform_action(
        self,
        session_id: str,
        action: str,
        skill_id: Optional[str] = None,
        dice_values: Optional[Sequence[int]] = None,
    ) -> TurnResult:
        """Run one turn for *session_id* and return the persisted result.

        Raises
        ------
        GameValidationError
            Missing session, ended game, empty action, bad skill or dice.
        NarratorError
            The narrator failed on every attempt; the turn is not consumed.
        PersistenceError
            The new state could not be stored; it must not be treated as saved.
        """
        if not action or not action.strip():
            raise GameValidationError("Action is required")

        async with self._lock(session_id):
            state = await self.load_game(session_id)
            if state.is_game_ended:
                raise GameEndedError(
                    f"Game '{session_id}' has ended: {state.game_ending or 'no ending recorded'}"
                )
            template = self._templates.load(state.template_id)
            dice = self._resolve_dice(template, state, skill_id, dice_values)

            prompt = self._prompts.build(template, state, action, dice)
            log.info(
                "Turn %d for game %s: action=%r, dice=%s",
                state.turn + 1, session_id, action[:60], dice.values if dice else None,
            )
            reply = await self._retry.run(
                lambda: self._narrator.narrate(
                    NarrationRequest(prompt=prompt, max_tokens=self._narrator.max_tokens)
                )
            )

            delta = self._parser.parse_reply(reply.text)
            narration = self._parser.strip_block(reply.text)

            new_state = state
            if dice is not None and dice.special_event is not None:
                new_state = apply_special_event_effect(new_state, dice.special_event.effect)
            new_state = apply_deltas(new_state, delta)

            progression = self._evaluator.evaluate(new_state, template)
            new_state = progression.state

            entry = self._history_entry(state, new_state, action, narration, dice, progression)
            new_state = new_state.model_copy(update={
                "turn": state.turn + 1,
                "current_scene": narration,
                "history": [*state.history, entry],
                "updated_at": entry.timestamp,
            })

            await self._store.save(new_state)
            log.info(
                "Turn %d complete for game %s: stage=%s, transitioned=%s, ended=%s",
                new_state.turn, session_id, new_state.current_stage_id,
                progression.transitioned, new_state.is_game_ended,
            )
            return TurnResult(
                state=new_state,
                narration=narration,
                dice=dice,
                delta=delta,
                transitioned=progression.transitioned,
            )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _lock(self, session_id: str) -> AsyncIterator[None]:
        """Hold the per-session lock; it is dropped once nobody holds or awaits it."""
        lock = self._locks.get(session_id)
        if lock is None:
            lock = self._locks[session_id] = asyncio.Lock()
        self._lock_users[session_id] = self._lock_users.get(session_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[session_id] -= 1
            if not self._lock_users[session_id]:
                del self._lock_users[session_id]
                del self._locks[session_id]

    def _resolve_dice(
        self,
        template: Template,
        state: GameState,
        skill_id: Optional[str],
        dice_values: Optional[Sequence[int]],
    ) -> Optional[DiceOutcome]:
        if skill_id:
            return self._dice.roll_for_skill(template, state, skill_id, dice_values)
        if dice_values is not None:
            return self._dice.resolve(dice_values, 0, template.special_dice_events)
        return None

    @staticmethod
    def _history_entry(
        before: GameState,
        after: GameState,
        action: str,
        narration: str,
        dice: Optional[DiceOutcome],
        progression: ProgressionResult,
    ) -> HistoryEntry:
        attribute_deltas = net_changes(before.attributes, after.attributes)
        relationship_deltas = net_changes(before.relationships, after.relationships)

        if progression.ended:
            event_type = "consequence"
        elif progression.transitioned:
            event_type = "achievement"
        elif dice is not None and dice.special_event is not None:
            event_type = "discovery"
        elif relationship_deltas:
            event_type = "relationship"
        else:
            event_type = None

        return HistoryEntry(
            turn=before.turn + 1,
            action=action,
            result=narration,
            stage_id=before.current_stage_id,
            dice_roll=dice,
            attribute_deltas=attribute_deltas,
            relationship_deltas=relationship_deltas,
            stage_transition_occurred=progression.transitioned,
            is_key_event=event_type is not None,
            event_type=event_type,
            related_npcs=list(relationship_deltas),
            impact=HistoryImpact(
                attributes=attribute_deltas,
                relationships=relationship_deltas,
                unlocks=progression.unlocked_skills,
            ),
        )
