from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, List

from pydantic import ValidationError

from taleforge.config import settings
from taleforge.errors import TemplateError, TemplateNotFoundError
from taleforge.models.template import Template, TemplateMetadata

log = logging.getLogger(__name__)


class TemplateLoader:
    """Load, validate and cache scenario templates stored as JSON files.

    Each template lives at ``<templates_dir>/<template_id>.json``. Templates
    are read-only for the lifetime of the process, so a loaded template is
    cached by id and never re-read.
    """

    def __init__(self, templates_dir: str | Path | None = None):
        self._dir = Path(templates_dir or settings.templates_dir)
        self._cache: Dict[str, Template] = {}

    def register(self, template: Template) -> Template:
        """Add an in-memory template (validated the same way as files)."""
        self.check_structure(template)
        self._cache[template.id] = template
        return template

    def available_ids(self) -> List[str]:
        ids = set(self._cache)
        if self._dir.is_dir():
            ids.update(p.stem for p in self._dir.glob("*.json"))
        return sorted(ids)

    def load(self, template_id: str) -> Template:
        """Return the template for *template_id*.

        Raises
        ------
        TemplateError
            The file is missing, is not valid JSON, does not match the
            template schema, or is structurally incomplete.
        """
        if not template_id:
            raise TemplateError("Template id is required")
        if "/" in template_id or "\\" in template_id or template_id.startswith("."):
            raise TemplateError(f"Invalid template id: {template_id!r}")
        if template_id in self._cache:
            return self._cache[template_id]

        path = self._dir / f"{template_id}.json"
        if not path.is_file():
            raise TemplateNotFoundError(f"Template '{template_id}' not found")

        log.info("Loading template: %s", template_id)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            template = Template.model_validate(data)
        except json.JSONDecodeError as exc:
            raise TemplateError(f"Template '{template_id}' is not valid JSON: {exc}") from exc
        except ValidationError as exc:
            raise TemplateError(f"Template '{template_id}' is invalid: {exc}") from exc

        if template.id != template_id:
            raise TemplateError(
                f"Template file '{template_id}.json' declares id '{template.id}'"
            )
        self.check_structure(template)
        self._cache[template_id] = template
        log.info("Loaded template: %s (%d stages)", template_id, len(template.stages))
        return template

    def list_metadata(self) -> List[TemplateMetadata]:
        """Metadata for every loadable template; broken ones are skipped."""
        result = []
        for template_id in self.available_ids():
            try:
                result.append(self.load(template_id).metadata)
            except TemplateError as exc:
                log.error("Skipping template %s: %s", template_id, exc)
        return result

    @staticmethod
    def check_structure(template: Template) -> None:
        """Cross-field checks the schema alone cannot express."""
        tid = template.id
        if not template.scenario.strip():
            raise TemplateError(f"Scenario missing for template '{tid}'")
        if not template.starting_point.strip():
            raise TemplateError(f"Starting point missing for template '{tid}'")
        if not template.attributes:
            raise TemplateError(f"Attributes missing for template '{tid}'")

        if template.first_stage_id and template.first_stage_id not in template.stages:
            raise TemplateError(
                f"Template '{tid}' first stage '{template.first_stage_id}' is not defined"
            )
        for stage_id, stage in template.stages.items():
            if stage.next_stage_id and stage.next_stage_id not in template.stages:
                raise TemplateError(
                    f"Template '{tid}' stage '{stage_id}' points to unknown "
                    f"next stage '{stage.next_stage_id}'"
                )

        # Stages must form a chain without cycles
        for start in template.stages:
            seen = {start}
            current = template.stages[start].next_stage_id
            while current:
                if current in seen:
                    raise TemplateError(
                        f"Template '{tid}' has a stage cycle through '{current}'"
                    )
                seen.add(current)
                current = template.stages[current].next_stage_id

        for skill_id, skill in template.base_skills.items():
            if skill.governing_attribute and skill.governing_attribute not in template.attributes:
                raise TemplateError(
                    f"Template '{tid}' skill '{skill_id}' uses unknown attribute "
                    f"'{skill.governing_attribute}'"
                )
