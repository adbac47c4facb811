import random
from pathlib import Path
from typing import List, Union

import pytest

from taleforge.db.store import FileGameStore
from taleforge.llm.base import LLMProvider
from taleforge.models.template import Template
from taleforge.services.dice import DiceService
from taleforge.services.game import GameService
from taleforge.services.narrator import Narrator, RetryPolicy
from taleforge.services.templates import TemplateLoader

ACADEMY = {
    "metadata": {"id": "academy", "name": "Night Academy", "description": "Study by candlelight"},
    "scenario": "A student arrives at a school for night magic.",
    "startingPoint": "You stand before the iron gates at midnight.",
    "attributes": {
        "intelligence": "Book smarts",
        "charisma": "Charm",
        "strength": "Muscle",
    },
    "baseSkills": {
        "study": {"name": "Study", "attributeKey": "intelligence"},
        "brawl": {"name": "Brawl", "attributeModifier": "strength"},
        "hunch": {"name": "Hunch"},
    },
    "playerCustomizations": {
        "house": {
            "name": "House",
            "options": ["Owl", "Wolf"],
            "impact": {"Owl": {"intelligence": 2}, "Wolf": {"strength": 2, "charisma": -1}},
        }
    },
    "npcs": {
        "faculty": [{"name": "Professor Vance", "description": "Stern", "initialRelationship": 10}],
        "students": [{"name": "Rook"}],
    },
    "specialDiceEvents": {
        "6": {"name": "Moonlit Insight", "description": "The moon whispers.", "effect": {"intelligence": 2}},
    },
    "firstStageId": "entrance",
    "stages": {
        "entrance": {
            "name": "Entrance Exam",
            "description": "Prove you belong.",
            "goals": [
                {"id": "pass-exam", "name": "Pass the exam", "requirements": {"intelligence": 10}},
            ],
            "completionConditions": {"minGoalsCompleted": 1},
            "rewards": {"attributeBonus": {"charisma": 1}, "unlockSkills": ["brawl"]},
            "nextStageId": "dormitory",
        },
        "dormitory": {
            "name": "Dormitory",
            "goals": [
                {"id": "win-duel", "name": "Win the duel", "requirements": {"strength": 20}},
            ],
            "completionConditions": {"minGoalsCompleted": 1},
            "failureConditions": [
                {
                    "description": "Expelled",
                    "checks": [{"attribute": "charisma", "op": "<=", "value": 0}],
                    "ending": "You are expelled at dawn.",
                }
            ],
        },
    },
}


def make_template(**overrides) -> Template:
    data = {**ACADEMY, **overrides}
    return Template.model_validate(data)


class ScriptedLLM(LLMProvider):
    """Returns queued replies in order; queued exceptions are raised."""

    def __init__(self, replies: List[Union[str, Exception]] | None = None):
        super().__init__(model="scripted")
        self.replies = list(replies or [])
        self.prompts: List[str] = []

    def queue(self, *replies: Union[str, Exception]) -> None:
        self.replies.extend(replies)

    async def complete(self, system_prompt, user_prompt, *, temperature=None, max_tokens=1500):
        self.prompts.append(user_prompt)
        if not self.replies:
            return "Nothing much happens."
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


@pytest.fixture
def template() -> Template:
    return make_template()


@pytest.fixture
def templates(tmp_path: Path, template: Template) -> TemplateLoader:
    loader = TemplateLoader(tmp_path / "templates")
    loader.register(template)
    return loader


@pytest.fixture
def store(tmp_path: Path) -> FileGameStore:
    return FileGameStore(tmp_path / "sessions")


@pytest.fixture
def llm() -> ScriptedLLM:
    return ScriptedLLM()


@pytest.fixture
def service(templates: TemplateLoader, store: FileGameStore, llm: ScriptedLLM) -> GameService:
    return GameService(
        templates=templates,
        store=store,
        narrator=Narrator(llm),
        retry=RetryPolicy(attempts=2, delay=0, timeout=None),
        dice=DiceService(random.Random(7)),
    )
