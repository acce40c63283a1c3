"""Exception types raised across the analysis pipeline."""
from __future__ import annotations


class CoachError(Exception):
    """Base class for chess_coach errors."""


class InvalidGameError(CoachError):
    """Game text could not be parsed into at least one move."""


class EngineSpawnError(CoachError):
    """The engine binary is missing or could not be started."""


class ProtocolParseError(CoachError):
    """An engine output line looked like a score report but could not be read."""

    def __init__(self, line: str, reason: str):
        super().__init__(f"{reason}: {line!r}")
        self.line = line
        self.reason = reason


class CommentaryError(CoachError):
    """The commentary service failed, timed out, or returned no text."""
