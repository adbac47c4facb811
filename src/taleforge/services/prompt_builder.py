"""Serializes a game turn into the narrator prompt.

The prompt is the only contract surface toward the narrator, so building it
is a pure function of (template, state, action, dice): identical inputs
always produce the identical string.
"""

from __future__ import annotations

import logging
import unicodedata
from typing import List, Optional

from taleforge.models.game import DiceOutcome, GameState
from taleforge.models.template import Template
from taleforge.prompts.loader import PromptLoader

log = logging.getLogger(__name__)

# Script name prefix (from unicodedata.name) -> language hint
_LANGUAGE_HINTS = {
    "CJK": "Chinese",
    "HIRAGANA": "Japanese",
    "KATAKANA": "Japanese",
    "HANGUL": "Korean",
    "CYRILLIC": "Russian",
    "GREEK": "Greek",
    "ARABIC": "Arabic",
    "HEBREW": "Hebrew",
    "THAI": "Thai",
    "DEVANAGARI": "Hindi",
}


def relationship_band(value: int) -> str:
    """Qualitative label for a relationship score."""
    if value >= 75:
        return "very positive"
    if value >= 25:
        return "positive"
    if value <= -75:
        return "very negative"
    if value <= -25:
        return "negative"
    return "neutral"


def detect_non_latin_script(text: str) -> Optional[str]:
    """Return the first non-Latin script found among the letters of *text*.

    Kana wins over CJK ideographs so Japanese titles are not read as Chinese.
    """
    scripts: List[str] = []
    for ch in text:
        if not ch.isalpha():
            continue
        name = unicodedata.name(ch, "")
        script = name.split(" ", 1)[0] if name else ""
        if script and script != "LATIN" and script not in scripts:
            scripts.append(script)
    for kana in ("HIRAGANA", "KATAKANA"):
        if kana in scripts:
            return kana
    return scripts[0] if scripts else None


class PromptBuilder:
    """Builds the narrator prompt for one turn."""

    def __init__(self, prompts: PromptLoader | None = None):
        self._prompts = prompts or PromptLoader()

    def build(
        self,
        template: Template,
        state: GameState,
        action: str,
        dice: Optional[DiceOutcome] = None,
    ) -> str:
        prompt = self._prompts.render(
            "narrator",
            "TURN_PROMPT",
            scenario_title=template.metadata.name,
            scenario=state.scenario,
            player_name=state.player_name,
            customizations=self._customizations_text(template, state),
            attributes=self._attributes_text(template, state),
            current_scene=state.current_scene or "(not yet described)",
            relationships=self._relationships_text(state),
            unlocked_skills=", ".join(state.unlocked_skills) or "(none)",
            npc_roster=self._npc_roster_text(template),
            stage=self._stage_text(template, state),
            goals=self._goals_text(template, state),
            previous_interaction=self._previous_interaction_text(state),
            action=action,
            dice=self.dice_text(dice),
            language_instruction=self._language_instruction(template.metadata.name),
        )
        log.debug("Built prompt for session=%s, len=%d", state.session_id, len(prompt))
        return prompt

    # ── Sections ────────────────────────────────────────────────────────

    @staticmethod
    def _customizations_text(template: Template, state: GameState) -> str:
        lines = []
        for key, choice in state.customizations.items():
            customization = template.player_customizations.get(key)
            label = customization.name if customization else key
            lines.append(f"  - {label}: {choice}")
        return "\n".join(lines) or "  - (none)"

    @staticmethod
    def _attributes_text(template: Template, state: GameState) -> str:
        lines = []
        for key, value in state.attributes.items():
            label = template.attributes.get(key)
            lines.append(f"  - {key} ({label}): {value}" if label else f"  - {key}: {value}")
        return "\n".join(lines) or "  - (none)"

    @staticmethod
    def _relationships_text(state: GameState) -> str:
        lines = [
            f"  - {name} ({relationship_band(value)}): {value}"
            for name, value in state.relationships.items()
        ]
        return "\n".join(lines) or "  - (none)"

    @staticmethod
    def _npc_roster_text(template: Template) -> str:
        lines = []
        for category, npcs in template.npcs.items():
            if not npcs:
                continue
            people = "; ".join(
                f"{npc.name} ({npc.description})" if npc.description else npc.name
                for npc in npcs
            )
            lines.append(f"- {category}: {people}")
        return "\n".join(lines) or "- (none)"

    @staticmethod
    def _stage_text(template: Template, state: GameState) -> str:
        stage = template.stages.get(state.current_stage_id or "")
        if stage is None:
            return "(none)"
        return f"{stage.name}: {stage.description}" if stage.description else stage.name

    @staticmethod
    def _goals_text(template: Template, state: GameState) -> str:
        stage_id = state.current_stage_id or ""
        stage = template.stages.get(stage_id)
        if stage is None or not stage.goals:
            return "  - (none)"
        done = set(state.completed_goals.get(stage_id, []))
        lines = []
        for goal in stage.goals:
            mark = "x" if goal.id in done else " "
            line = f"  - [{mark}] {goal.name}"
            if goal.description:
                line += f": {goal.description}"
            if goal.requirements:
                reqs = ", ".join(f"{attr} {value}" for attr, value in goal.requirements.items())
                line += f" (requires {reqs})"
            lines.append(line)
        return "\n".join(lines)

    @staticmethod
    def _previous_interaction_text(state: GameState) -> str:
        last = state.last_entry
        if last is None:
            return "This is the first interaction."
        return (
            f"Previous interaction (Turn {last.turn}):\n"
            f"Player: {last.action}\n"
            f"Response: {last.result}"
        )

    @staticmethod
    def dice_text(dice: Optional[DiceOutcome]) -> str:
        """Describe a dice outcome for the narrator."""
        if dice is None:
            return "No dice roll was performed for this action."

        rolled = ", ".join(str(v) for v in dice.values)
        if dice.is_match:
            text = f"The player rolled three dice: {rolled}. Triple {dice.matched_value}! "
            if dice.special_event is not None:
                event = dice.special_event
                text += f'This triggers the special event "{event.name}"'
                text += f": {event.description}" if event.description else "."
            else:
                text += (
                    f"A rare twist of fate: narrate an unexpected turn of events "
                    f"tied to the number {dice.matched_value}."
                )
            return text + " Ordinary success rules do not apply to this roll."

        if dice.attribute_key:
            modifier = (
                f"a modifier of {dice.modifier:+d} from {dice.attribute_key} "
                f"({dice.attribute_value})"
            )
        else:
            modifier = f"a modifier of {dice.modifier:+d}"
        return (
            f"The player rolled three dice: {rolled} (sum {dice.sum}), with {modifier}, "
            f"for a total of {dice.total}. Higher totals mean better outcomes "
            f"(3 is the worst possible roll and 18 the best before modifiers)."
        )

    @staticmethod
    def _language_instruction(title: str) -> str:
        script = detect_non_latin_script(title)
        if script is None:
            return ""
        language = _LANGUAGE_HINTS.get(script)
        if language:
            return (
                f'The scenario title "{title}" is written in {language}. '
                f"Write the entire story in {language}, keeping the [STATS] "
                f"labels in English.\n"
            )
        return (
            f'The scenario title "{title}" uses non-Latin script. Write the entire '
            f"story in the same language as the title, keeping the [STATS] labels "
            f"in English.\n"
        )
