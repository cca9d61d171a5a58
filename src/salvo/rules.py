"""Move validation and turn arbitration.

Everything here is a pure function of a session snapshot: nothing is stored
and nothing is mutated. GameSession calls :func:`adjudicate` before touching a
board, so a shot is either applied in full or not at all.
"""

from __future__ import annotations

from enum import Enum
from typing import Iterable, Mapping, NamedTuple, Optional

from .battleship import Board, ShotResult
from .coord_utils import Coordinate
from .errors import InvalidPhase, NoActiveSession, NotYourTurn


class Phase(str, Enum):
    """Lifecycle of a session. FINISHED is terminal."""

    WAITING_FOR_PLAYERS = "waiting_for_players"
    SETUP = "setup"
    ACTIVE = "active"
    FINISHED = "finished"


class Snapshot(NamedTuple):
    """Read-only view of the session state the arbiter needs."""

    phase: Phase
    players: tuple[str, ...]
    turn: Optional[str]
    boards: Mapping[str, Board]


def check_phase(phase: Phase, *allowed: Phase) -> None:
    if phase not in allowed:
        wanted = " or ".join(p.value for p in allowed)
        raise InvalidPhase(f"Action requires phase {wanted}, session is {phase.value}")


def opponent_of(players: tuple[str, ...], player: str) -> str:
    """Return the other seated player, or raise NoActiveSession if *player* is not seated."""
    if player not in players:
        raise NoActiveSession(f"{player} is not seated in this session")
    others = [p for p in players if p != player]
    if not others:
        raise NoActiveSession(f"{player} has no opponent yet")
    return others[0]


def adjudicate(snapshot: Snapshot, player: str, coord: Iterable[int]) -> ShotResult:
    """
    Validate *player* firing at *coord* and return the outcome it would have.

    Checks run in a fixed order: phase, seat, turn, bounds, repeat shot.
    """
    check_phase(snapshot.phase, Phase.ACTIVE)
    opponent = opponent_of(snapshot.players, player)
    if snapshot.turn != player:
        raise NotYourTurn(f"It is {snapshot.turn}'s turn")
    # OutOfBounds and DuplicateShot come from the target board
    return snapshot.boards[opponent].preview_shot(Coordinate(*coord))
