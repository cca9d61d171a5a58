"""Recoverable game errors raised by the session engine.

Every error carries a short, stable ``code`` so transports can report it
without parsing the message text. None of these are fatal to the process and
the engine never retries on its own.
"""

from __future__ import annotations


class GameError(Exception):
    """Base for all recoverable game-engine errors."""

    code = "error"


class InvalidPlacement(GameError):
    """Raised when a ship cannot be placed on a board."""

    code = "invalid_placement"


class DuplicateShot(GameError):
    """Raised when a coordinate has already been targeted."""

    code = "duplicate_shot"


class NotYourTurn(GameError):
    """Raised when a player acts while the opponent holds the turn."""

    code = "not_your_turn"


class InvalidPhase(GameError):
    """Raised when an action is not allowed in the session's current phase."""

    code = "invalid_phase"


class OutOfBounds(GameError):
    """Raised when a shot targets a coordinate outside the board."""

    code = "out_of_bounds"


class NotWaiting(GameError):
    """Raised when dequeuing a player that is not in the waiting pool."""

    code = "not_waiting"


class NoActiveSession(GameError):
    """Raised when a player has no live session (or is not seated in it)."""

    code = "no_active_session"


class AlreadyInSession(GameError):
    """Raised when a player still seated in a live match tries to queue again."""

    code = "already_in_session"
