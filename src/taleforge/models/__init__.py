from taleforge.models.template import (
    NPC,
    AttributeCheck,
    CompletionConditions,
    Customization,
    FailureCondition,
    Goal,
    SkillDefinition,
    SpecialDiceEvent,
    StageDefinition,
    StageRewards,
    Template,
    TemplateMetadata,
)
from taleforge.models.game import (
    DiceOutcome,
    GameState,
    HistoryEntry,
    HistoryImpact,
    StatsDelta,
    TurnResult,
)

__all__ = [
    "NPC",
    "AttributeCheck",
    "CompletionConditions",
    "Customization",
    "FailureCondition",
    "Goal",
    "SkillDefinition",
    "SpecialDiceEvent",
    "StageDefinition",
    "StageRewards",
    "Template",
    "TemplateMetadata",
    "DiceOutcome",
    "GameState",
    "HistoryEntry",
    "HistoryImpact",
    "StatsDelta",
    "TurnResult",
]
