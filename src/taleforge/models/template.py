"""Scenario template models.

A template is the static, read-only definition of one scenario: the
attributes a character has, the skills that roll dice against them, the
customization choices offered at character creation, the NPC roster, the
special events triggered by a triple dice match, and the linear chain of
stages with their goals, rewards and endings.

Template files may spell keys in camelCase (``firstStageId``) or
snake_case (``first_stage_id``); both validate into the same model.
"""

from __future__ import annotations

import operator
from typing import Callable, Dict, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class TemplateModel(BaseModel):
    """Base for every template model: accepts camelCase and snake_case keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class TemplateMetadata(TemplateModel):
    id: str
    name: str
    description: str = ""
    image_url: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    difficulty: Optional[str] = None
    estimated_duration: Optional[str] = None


class SkillDefinition(TemplateModel):
    """A skill the player can roll for; its modifier comes from one attribute."""

    name: str
    description: str = ""
    governing_attribute: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices(
            "governing_attribute",
            "governingAttribute",
            "attributeKey",
            "attribute_key",
            "attributeModifier",
            "attribute_modifier",
        ),
    )


class Customization(TemplateModel):
    """A character-creation choice; each option may shift starting attributes."""

    name: str
    description: str = ""
    options: List[str] = Field(default_factory=list)
    impact: Dict[str, Dict[str, int]] = Field(default_factory=dict)


class NPC(TemplateModel):
    name: str
    description: str = ""
    initial_relationship: int = 0


class SpecialDiceEvent(TemplateModel):
    """Triggered when all three dice show the same face."""

    name: str
    description: str = ""
    effect: Dict[str, int] = Field(default_factory=dict)


class Goal(TemplateModel):
    id: str
    name: str
    description: str = ""
    requirements: Dict[str, int] = Field(default_factory=dict)

    def requirements_met(self, attributes: Dict[str, int]) -> bool:
        """Every required attribute is at or above its threshold (missing = 0)."""
        return all(
            attributes.get(attr, 0) >= minimum
            for attr, minimum in self.requirements.items()
        )


class CompletionConditions(TemplateModel):
    min_goals_completed: Optional[int] = None
    min_attributes: Dict[str, int] = Field(default_factory=dict)


class StageRewards(TemplateModel):
    attribute_bonus: Dict[str, int] = Field(default_factory=dict)
    unlock_skills: List[str] = Field(default_factory=list)


_COMPARATORS: Dict[str, Callable[[int, int], bool]] = {
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "==": operator.eq,
    "!=": operator.ne,
}


class AttributeCheck(TemplateModel):
    """``attributes[attribute] <op> value``; a missing attribute reads as 0."""

    attribute: str
    op: Literal["<", "<=", ">", ">=", "==", "!="] = "<"
    value: int = 0

    def holds(self, attributes: Dict[str, int]) -> bool:
        return _COMPARATORS[self.op](attributes.get(self.attribute, 0), self.value)


class FailureCondition(TemplateModel):
    """A defeat trigger: all checks hold and at least ``min_turn`` turns were played."""

    description: str = ""
    checks: List[AttributeCheck] = Field(default_factory=list)
    min_turn: int = 0
    ending: Optional[str] = None

    def holds(self, attributes: Dict[str, int], turn: int) -> bool:
        if not self.checks or turn < self.min_turn:
            return False
        return all(check.holds(attributes) for check in self.checks)


class StageDefinition(TemplateModel):
    name: str
    description: str = ""
    goals: List[Goal] = Field(default_factory=list)
    completion_conditions: CompletionConditions = Field(
        default_factory=CompletionConditions
    )
    rewards: StageRewards = Field(default_factory=StageRewards)
    next_stage_id: Optional[str] = None
    failure_conditions: List[FailureCondition] = Field(default_factory=list)
    ending: Optional[str] = None


class Template(TemplateModel):
    """The complete, immutable definition of one scenario."""

    metadata: TemplateMetadata
    scenario: str
    starting_point: str
    attributes: Dict[str, str]
    base_skills: Dict[str, SkillDefinition] = Field(default_factory=dict)
    player_customizations: Dict[str, Customization] = Field(default_factory=dict)
    npcs: Dict[str, List[NPC]] = Field(default_factory=dict)
    special_dice_events: Dict[int, SpecialDiceEvent] = Field(default_factory=dict)
    stages: Dict[str, StageDefinition] = Field(default_factory=dict)
    first_stage_id: Optional[str] = None
    failure_conditions: List[FailureCondition] = Field(default_factory=list)
    victory_ending: Optional[str] = None
    defeat_ending: Optional[str] = None

    @property
    def id(self) -> str:
        return self.metadata.id

    def starting_stage_id(self) -> Optional[str]:
        """``first_stage_id`` when set, else the first declared stage."""
        if self.first_stage_id:
            return self.first_stage_id
        return next(iter(self.stages), None)

    def iter_npcs(self) -> List[NPC]:
        return [npc for group in self.npcs.values() for npc in group]
