from __future__ import annotations

import re
from pathlib import Path

from taleforge.config import settings

_PLACEHOLDER_RE = re.compile(r"\{(\w+)\}")


class PromptLoader:
    """Loads prompt templates from .txt files and renders them with variables.

    Template format uses ``{variable_name}`` placeholders. Files live under
    ``<templates_dir>/<category>/<NAME>.txt``.
    """

    def __init__(self, templates_dir: str | Path | None = None):
        self._dir = Path(templates_dir or settings.prompts_dir)
        self._cache: dict[str, str] = {}

    def load(self, category: str, name: str) -> str:
        """Load raw template text.

        Example::

            loader.load("narrator", "TURN_PROMPT")
        """
        key = f"{category}/{name}"
        if key not in self._cache:
            path = self._dir / category / f"{name}.txt"
            self._cache[key] = path.read_text(encoding="utf-8")
        return self._cache[key]

    def render(self, category: str, name: str, **variables: str) -> str:
        """Load a template and substitute ``{var}`` placeholders.

        Only placeholders whose keys appear in *variables* are replaced;
        others are left untouched (safe partial rendering). Substitution is
        a single pass, so braces inside substituted values are kept as-is.
        """
        template = self.load(category, name)
        return _PLACEHOLDER_RE.sub(
            lambda m: variables.get(m.group(1), m.group(0)), template
        )
