"""Stage progression: goals, completion, rewards, transitions and endings.

Stages form a strictly linear chain per template. Each evaluation looks at
the *current* stage only:

    1. goals whose requirements are met are marked completed (never removed)
    2. failure conditions (stage first, then template-wide) may end the game
       in defeat, skipping completion entirely
    3. when the completion conditions hold, rewards are applied and the game
       moves to ``next_stage_id`` or, at the end of the chain, is won

Completing a stage moves the game on, so rewards are applied exactly once.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from taleforge.models.game import GameState, StatsDelta
from taleforge.models.template import FailureCondition, StageDefinition, Template
from taleforge.services.state import apply_deltas

log = logging.getLogger(__name__)

DEFAULT_VICTORY_ENDING = "You have successfully completed the scenario!"
DEFAULT_DEFEAT_ENDING = "Your journey ends here."


@dataclass
class ProgressionResult:
    state: GameState
    transitioned: bool = False
    newly_completed_goals: List[str] = field(default_factory=list)
    unlocked_skills: List[str] = field(default_factory=list)
    ended: bool = False


class StageEvaluator:
    """Evaluates the current stage of a game against its template."""

    def evaluate(self, state: GameState, template: Template) -> ProgressionResult:
        if state.is_game_ended or not state.current_stage_id:
            return ProgressionResult(state=state)
        stage = template.stages.get(state.current_stage_id)
        if stage is None:
            log.warning(
                "Stage '%s' not found in template '%s'; skipping progression",
                state.current_stage_id, template.id,
            )
            return ProgressionResult(state=state)

        stage_id = state.current_stage_id
        state, newly_completed = self._complete_goals(state, stage_id, stage)
        result = ProgressionResult(state=state, newly_completed_goals=newly_completed)

        failure = self._triggered_failure(state, stage, template)
        if failure is not None:
            ending = failure.ending or template.defeat_ending or DEFAULT_DEFEAT_ENDING
            log.info(
                "Game %s ended in defeat at stage '%s': %s",
                state.session_id, stage_id, failure.description or ending,
            )
            result.state = state.model_copy(
                update={"is_game_ended": True, "game_ending": ending, "outcome": "defeat"}
            )
            result.ended = True
            return result

        if not self.stage_complete(state, stage_id, stage):
            return result

        log.info("Stage completed: %s (%s)", stage.name, stage_id)
        result.transitioned = True
        state = apply_deltas(state, StatsDelta(attributes=stage.rewards.attribute_bonus))

        unlocked = [s for s in stage.rewards.unlock_skills if s not in state.unlocked_skills]
        if unlocked:
            log.info("Unlocked skills: %s", unlocked)
            state = state.model_copy(
                update={"unlocked_skills": [*state.unlocked_skills, *unlocked]}
            )
        result.unlocked_skills = unlocked

        if stage.next_stage_id and stage.next_stage_id in template.stages:
            log.info("Transitioning to stage: %s", stage.next_stage_id)
            state = state.model_copy(update={"current_stage_id": stage.next_stage_id})
        else:
            ending = stage.ending or template.victory_ending or DEFAULT_VICTORY_ENDING
            log.info("Final stage completed, game %s won", state.session_id)
            state = state.model_copy(
                update={"is_game_ended": True, "game_ending": ending, "outcome": "victory"}
            )
            result.ended = True

        result.state = state
        return result

    @staticmethod
    def stage_complete(state: GameState, stage_id: str, stage: StageDefinition) -> bool:
        """Whether the stage's completion conditions hold for *state*."""
        conditions = stage.completion_conditions
        completed = state.completed_goals.get(stage_id, [])
        if conditions.min_goals_completed and len(completed) < conditions.min_goals_completed:
            return False
        return all(
            state.attributes.get(attr, 0) >= minimum
            for attr, minimum in conditions.min_attributes.items()
        )

    @staticmethod
    def _complete_goals(
        state: GameState, stage_id: str, stage: StageDefinition
    ) -> tuple[GameState, List[str]]:
        done = list(state.completed_goals.get(stage_id, []))
        newly: List[str] = []
        for goal in stage.goals:
            if goal.id in done or not goal.requirements_met(state.attributes):
                continue
            done.append(goal.id)
            newly.append(goal.id)
            log.info("Goal completed: %s in stage %s", goal.name, stage.name)

        if not newly:
            return state, newly
        completed_goals = {k: list(v) for k, v in state.completed_goals.items()}
        completed_goals[stage_id] = done
        return state.model_copy(update={"completed_goals": completed_goals}), newly

    @staticmethod
    def _triggered_failure(
        state: GameState, stage: StageDefinition, template: Template
    ) -> Optional[FailureCondition]:
        for condition in [*stage.failure_conditions, *template.failure_conditions]:
            if condition.holds(state.attributes, state.turn):
                return condition
        return None
