"""Triple-d6 action resolution with attribute modifiers and special events.

Skill checks roll three six-sided dice. The total is the sum of the dice
plus a modifier derived from the skill's governing attribute: every 5
points of the attribute contribute +1 (``value // 5``).

When all three dice show the same face the roll is a *match*: ordinary
resolution is bypassed and the template's special event for that face
(if any) fires instead.
"""

from __future__ import annotations

import logging
import random
from typing import Dict, List, Optional, Sequence

from taleforge.errors import GameValidationError
from taleforge.models.game import DiceOutcome, GameState
from taleforge.models.template import SpecialDiceEvent, Template

log = logging.getLogger(__name__)

DICE_COUNT = 3
DICE_FACES = 6
ATTRIBUTE_POINTS_PER_MODIFIER = 5


class DiceService:
    """Stateless dice resolution over an injectable random source."""

    def __init__(self, rng: Optional[random.Random] = None):
        self._rng = rng or random.Random()

    # ── Pure randomness ──────────────────────────────────────────────────

    def roll_triple(self) -> List[int]:
        """Three independent, uniform d6 rolls."""
        return [self._rng.randint(1, DICE_FACES) for _ in range(DICE_COUNT)]

    @staticmethod
    def check_match(values: Sequence[int]) -> bool:
        """True iff all three dice show the same face."""
        return len(values) == DICE_COUNT and len(set(values)) == 1

    @staticmethod
    def modifier_for(attribute_value: int) -> int:
        """Every 5 points of the governing attribute contribute +1 (floored)."""
        return attribute_value // ATTRIBUTE_POINTS_PER_MODIFIER

    @staticmethod
    def validate_values(values: Sequence[int]) -> List[int]:
        if len(values) != DICE_COUNT:
            raise GameValidationError(
                f"Expected {DICE_COUNT} dice values, got {len(values)}"
            )
        for v in values:
            if isinstance(v, bool) or not isinstance(v, int) or not 1 <= v <= DICE_FACES:
                raise GameValidationError(
                    f"Dice values must be integers between 1 and {DICE_FACES}, got {v!r}"
                )
        return list(values)

    # ── Resolution ───────────────────────────────────────────────────────

    def resolve(
        self,
        values: Sequence[int],
        modifier: int = 0,
        special_events: Optional[Dict[int, SpecialDiceEvent]] = None,
        *,
        attribute_key: Optional[str] = None,
        attribute_value: Optional[int] = None,
    ) -> DiceOutcome:
        """Resolve a roll into a :class:`DiceOutcome`.

        A match records the matched face and its special event and leaves
        ``sum``/``total`` unset. Otherwise ``total = sum(values) + modifier``.
        """
        values = self.validate_values(values)

        if self.check_match(values):
            matched = values[0]
            event = (special_events or {}).get(matched)
            log.info(
                "Dice match: values=%s, special_event=%s",
                values, event.name if event else None,
            )
            return DiceOutcome(
                values=values,
                is_match=True,
                matched_value=matched,
                modifier=modifier,
                attribute_key=attribute_key,
                attribute_value=attribute_value,
                special_event=event,
            )

        total_sum = sum(values)
        log.info(
            "Dice resolved: values=%s, sum=%d, modifier=%+d, total=%d",
            values, total_sum, modifier, total_sum + modifier,
        )
        return DiceOutcome(
            values=values,
            is_match=False,
            sum=total_sum,
            modifier=modifier,
            total=total_sum + modifier,
            attribute_key=attribute_key,
            attribute_value=attribute_value,
        )

    def roll_for_skill(
        self,
        template: Template,
        state: GameState,
        skill_id: str,
        values: Optional[Sequence[int]] = None,
    ) -> DiceOutcome:
        """Resolve a skill check, rolling fresh dice when *values* is None.

        Raises
        ------
        GameValidationError
            Unknown skill, a skill without a governing attribute, or a
            governing attribute the character does not have.
        """
        skill = template.base_skills.get(skill_id)
        if skill is None:
            raise GameValidationError(
                f"Skill '{skill_id}' not found. "
                f"Available: {list(template.base_skills)}"
            )
        attribute_key = skill.governing_attribute
        if not attribute_key:
            raise GameValidationError(
                f"No governing attribute defined for skill '{skill_id}'"
            )
        if attribute_key not in state.attributes:
            raise GameValidationError(f"Attribute '{attribute_key}' not found")

        attribute_value = state.attributes[attribute_key]
        modifier = self.modifier_for(attribute_value)
        rolled = list(values) if values is not None else self.roll_triple()
        log.info(
            "Skill check: skill=%s, attribute=%s (%d), modifier=%+d",
            skill_id, attribute_key, attribute_value, modifier,
        )
        return self.resolve(
            rolled,
            modifier,
            template.special_dice_events,
            attribute_key=attribute_key,
            attribute_value=attribute_value,
        )
