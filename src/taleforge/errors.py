"""Exception hierarchy shared by the engine, its collaborators and the API."""

from __future__ import annotations


class TaleforgeError(Exception):
    """Base class for every error raised by taleforge."""


class GameValidationError(TaleforgeError, ValueError):
    """The request cannot be applied to the game as it stands.

    Raised before any state is touched, so the caller can surface the
    message verbatim.
    """


class SessionNotFoundError(GameValidationError):
    """No stored game exists for the given session id."""


class GameEndedError(GameValidationError):
    """The game has reached an ending and no longer accepts actions."""


class TemplateError(GameValidationError):
    """A scenario template is missing or structurally incomplete."""


class NarratorError(TaleforgeError, RuntimeError):
    """The narrator could not be reached, failed, or timed out."""


class PersistenceError(TaleforgeError, RuntimeError):
    """A game state could not be read from or written to storage."""


class TemplateNotFoundError(TemplateError):
    """No template file exists for the given template id."""
