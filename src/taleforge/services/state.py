"""Pure state mutation helpers.

Every function returns a new :class:`GameState`; the input is never
modified. Attributes are open-ended integers. Relationships are clamped to
[-100, 100] on every write.
"""

from __future__ import annotations

from typing import Dict, Mapping

from taleforge.models.game import GameState, StatsDelta

RELATIONSHIP_MIN = -100
RELATIONSHIP_MAX = 100


def clamp_relationship(value: int) -> int:
    return max(RELATIONSHIP_MIN, min(RELATIONSHIP_MAX, value))


def update_attribute(state: GameState, attribute: str, change: int) -> GameState:
    """Add *change* to one attribute (a missing attribute starts at 0)."""
    attributes = dict(state.attributes)
    attributes[attribute] = attributes.get(attribute, 0) + change
    return state.model_copy(update={"attributes": attributes})


def update_relationship(state: GameState, npc: str, change: int) -> GameState:
    """Add *change* to the relationship with *npc*, clamped to [-100, 100]."""
    relationships = dict(state.relationships)
    relationships[npc] = clamp_relationship(relationships.get(npc, 0) + change)
    return state.model_copy(update={"relationships": relationships})


def apply_deltas(state: GameState, delta: StatsDelta) -> GameState:
    """Sum attribute deltas (unclamped) and relationship deltas (clamped)."""
    attributes: Dict[str, int] = dict(state.attributes)
    for attr, change in delta.attributes.items():
        attributes[attr] = attributes.get(attr, 0) + change

    relationships: Dict[str, int] = dict(state.relationships)
    for npc, change in delta.relationships.items():
        relationships[npc] = clamp_relationship(relationships.get(npc, 0) + change)

    return state.model_copy(
        update={"attributes": attributes, "relationships": relationships}
    )


def apply_special_event_effect(state: GameState, effect: Mapping[str, int]) -> GameState:
    """Apply a dice special event's attribute effect."""
    return apply_deltas(state, StatsDelta(attributes=dict(effect)))


def net_changes(before: Mapping[str, int], after: Mapping[str, int]) -> Dict[str, int]:
    """Per-key difference ``after - before``, omitting unchanged keys."""
    changes: Dict[str, int] = {}
    for key in dict.fromkeys([*before, *after]):
        diff = after.get(key, 0) - before.get(key, 0)
        if diff:
            changes[key] = diff
    return changes
