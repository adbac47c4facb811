from __future__ import annotations

import logging
import re
from typing import Dict, Optional, Protocol

from taleforge.models.game import StatsDelta

log = logging.getLogger(__name__)

STATS_BLOCK_RE = re.compile(r"\[STATS\](.*?)\[/STATS\]", re.IGNORECASE | re.DOTALL)
_ATTRIBUTE_LINE_RE = re.compile(
    r"^\s*(?:[-*]\s*)?attribute changes\s*:(.*)$", re.IGNORECASE | re.MULTILINE
)
_RELATIONSHIP_LINE_RE = re.compile(
    r"^\s*(?:[-*]\s*)?relationship changes\s*:(.*)$", re.IGNORECASE | re.MULTILINE
)
# Sign and digits are anchored at the end, so names may contain hyphens.
_TOKEN_RE = re.compile(r"(.+?)\s*([+-])\s*(\d{1,9})")


class DeltaParser(Protocol):
    """Turns a narrator reply into stat deltas. Must never raise."""

    def parse_reply(self, text: str) -> StatsDelta: ...

    def strip_block(self, text: str) -> str: ...


class StatsBlockParser:
    """Parse the ``[STATS] ... [/STATS]`` block a narrator appends to its reply.

    The block looks like::

        [STATS]
        Attribute changes: intelligence+2, stress-1
        Relationship changes: Captain Mara+5
        [/STATS]

    The narrator is untrusted free text, so parsing is permissive: a
    missing block, a missing line, or a malformed token simply yields no
    change for that part.
    """

    @staticmethod
    def extract_block(text: str) -> Optional[str]:
        """Return the contents of the first stats block, or None."""
        match = STATS_BLOCK_RE.search(text or "")
        return match.group(1) if match else None

    @staticmethod
    def strip_block(text: str) -> str:
        """Return *text* with every stats block removed."""
        return STATS_BLOCK_RE.sub("", text or "").strip()

    @staticmethod
    def normalize_attribute(name: str) -> str:
        return re.sub(r"\s+", "_", name.strip().lower())

    def parse(self, block: Optional[str]) -> StatsDelta:
        """Parse the inside of a stats block into attribute/relationship deltas."""
        if not block:
            return StatsDelta()

        attributes: Dict[str, int] = {}
        relationships: Dict[str, int] = {}

        attr_line = _ATTRIBUTE_LINE_RE.search(block)
        if attr_line:
            for name, change in self._tokens(attr_line.group(1)):
                key = self.normalize_attribute(name)
                attributes[key] = attributes.get(key, 0) + change

        rel_line = _RELATIONSHIP_LINE_RE.search(block)
        if rel_line:
            for name, change in self._tokens(rel_line.group(1)):
                key = name.strip()
                relationships[key] = relationships.get(key, 0) + change

        return StatsDelta(attributes=attributes, relationships=relationships)

    def parse_reply(self, text: str) -> StatsDelta:
        """Extract the stats block from a full reply and parse it."""
        return self.parse(self.extract_block(text))

    @staticmethod
    def _tokens(line: str):
        for raw in line.split(","):
            token = raw.strip()
            if not token:
                continue
            match = _TOKEN_RE.fullmatch(token)
            if not match or not match.group(1).strip():
                log.warning("Skipping malformed stats token: %r", token)
                continue
            name, sign, digits = match.groups()
            value = int(digits)
            yield name, value if sign == "+" else -value
