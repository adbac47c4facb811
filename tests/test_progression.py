"""Tests for taleforge.services.progression."""

from taleforge.models.game import GameState
from taleforge.services.progression import (
    DEFAULT_DEFEAT_ENDING,
    DEFAULT_VICTORY_ENDING,
    StageEvaluator,
)

from conftest import make_template


def _state(stage: str = "entrance", turn: int = 0, **attributes) -> GameState:
    base = {"intelligence": 5, "charisma": 5, "strength": 5}
    base.update(attributes)
    return GameState(
        session_id="s1", user_id="u1", template_id="academy", player_name="Ada",
        scenario="x", attributes=base, current_stage_id=stage, turn=turn,
    )


# ---------------------------------------------------------------------------
# Goals and transitions
# ---------------------------------------------------------------------------

class TestGoals:
    def test_unmet_goal_stays_open(self, template) -> None:
        result = StageEvaluator().evaluate(_state(), template)
        assert result.newly_completed_goals == []
        assert not result.transitioned
        assert result.state.current_stage_id == "entrance"

    def test_completed_goal_is_recorded_once(self, template) -> None:
        no_next = make_template(stages={
            "entrance": {
                "name": "Entrance",
                "goals": [
                    {"id": "g1", "name": "G1", "requirements": {"intelligence": 10}},
                    {"id": "g2", "name": "G2", "requirements": {"strength": 50}},
                ],
                "completionConditions": {"minGoalsCompleted": 2},
            }
        }, firstStageId="entrance")
        evaluator = StageEvaluator()
        first = evaluator.evaluate(_state(intelligence=10), no_next)
        assert first.newly_completed_goals == ["g1"]
        second = evaluator.evaluate(first.state, no_next)
        assert second.newly_completed_goals == []
        assert second.state.completed_goals == {"entrance": ["g1"]}

    def test_goals_never_removed_when_attribute_drops(self, template) -> None:
        state = _state(intelligence=3).model_copy(update={"completed_goals": {"dormitory": ["x"]}})
        result = StageEvaluator().evaluate(state, template)
        assert result.state.completed_goals["dormitory"] == ["x"]


class TestTransition:
    def test_stage_completion_applies_rewards_and_moves_on(self, template) -> None:
        result = StageEvaluator().evaluate(_state(intelligence=10), template)
        assert result.transitioned
        assert result.state.current_stage_id == "dormitory"
        assert result.state.attributes["charisma"] == 6
        assert result.state.unlocked_skills == ["brawl"]
        assert result.unlocked_skills == ["brawl"]
        assert result.state.completed_goals == {"entrance": ["pass-exam"]}
        assert not result.state.is_game_ended

    def test_only_one_stage_per_evaluation(self, template) -> None:
        # strength already satisfies the dormitory goal, but dormitory is not evaluated yet
        result = StageEvaluator().evaluate(_state(intelligence=10, strength=30), template)
        assert result.state.current_stage_id == "dormitory"
        assert "dormitory" not in result.state.completed_goals

    def test_unlocked_skills_not_duplicated(self, template) -> None:
        state = _state(intelligence=10).model_copy(update={"unlocked_skills": ["brawl"]})
        result = StageEvaluator().evaluate(state, template)
        assert result.state.unlocked_skills == ["brawl"]
        assert result.unlocked_skills == []

    def test_min_attributes_condition(self) -> None:
        t = make_template(stages={
            "entrance": {
                "name": "Entrance",
                "completionConditions": {"minAttributes": {"charisma": 8}},
                "nextStageId": "dormitory",
            },
            "dormitory": {"name": "Dormitory"},
        })
        assert not StageEvaluator().evaluate(_state(charisma=7), t).transitioned
        assert StageEvaluator().evaluate(_state(charisma=8), t).transitioned

    def test_empty_conditions_complete_immediately(self) -> None:
        t = make_template(stages={"entrance": {"name": "Entrance", "nextStageId": "end"},
                                  "end": {"name": "End"}})
        result = StageEvaluator().evaluate(_state(), t)
        assert result.transitioned
        assert result.state.current_stage_id == "end"


# ---------------------------------------------------------------------------
# Endings
# ---------------------------------------------------------------------------

class TestEndings:
    def test_final_stage_completion_is_victory(self, template) -> None:
        result = StageEvaluator().evaluate(_state("dormitory", strength=20), template)
        assert result.ended
        assert result.transitioned
        assert result.state.is_game_ended
        assert result.state.outcome == "victory"
        assert result.state.game_ending == DEFAULT_VICTORY_ENDING
        assert result.state.current_stage_id == "dormitory"

    def test_stage_ending_text_wins(self) -> None:
        t = make_template(
            stages={"entrance": {"name": "Entrance", "ending": "You graduate."}},
            victoryEnding="Generic win.",
        )
        assert StageEvaluator().evaluate(_state(), t).state.game_ending == "You graduate."

    def test_stage_failure_condition_is_defeat(self, template) -> None:
        result = StageEvaluator().evaluate(_state("dormitory", charisma=0), template)
        assert result.ended
        assert not result.transitioned
        assert result.state.outcome == "defeat"
        assert result.state.game_ending == "You are expelled at dawn."

    def test_failure_takes_precedence_over_completion(self, template) -> None:
        result = StageEvaluator().evaluate(_state("dormitory", charisma=0, strength=25), template)
        assert result.state.outcome == "defeat"

    def test_template_failure_respects_min_turn(self) -> None:
        t = make_template(failureConditions=[
            {"checks": [{"attribute": "strength", "op": "<", "value": 1}], "minTurn": 2}
        ])
        early = StageEvaluator().evaluate(_state(turn=1, strength=0), t)
        assert not early.ended
        late = StageEvaluator().evaluate(_state(turn=2, strength=0), t)
        assert late.state.outcome == "defeat"
        assert late.state.game_ending == DEFAULT_DEFEAT_ENDING

    def test_ended_game_is_left_alone(self, template) -> None:
        state = _state(intelligence=10).model_copy(update={"is_game_ended": True})
        result = StageEvaluator().evaluate(state, template)
        assert result.state is state
        assert not result.transitioned

    def test_unknown_stage_is_a_no_op(self, template) -> None:
        state = _state("nowhere")
        assert StageEvaluator().evaluate(state, template).state is state
