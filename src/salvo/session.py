"""Two-player game session state machine.

A GameSession owns both boards and the move log of a *single* match and walks
it through its lifecycle:

    WAITING_FOR_PLAYERS -> SETUP -> ACTIVE -> FINISHED

• The registry seats players with join(); the second join opens SETUP.
• Each player places a fleet with place_ships(); once both boards are ready
  the session goes ACTIVE and the configured opener gets the first turn.
• submit_move() validates through rules.adjudicate() and applies the shot in
  the same critical section; every non-winning shot hands the turn over.
• forfeit() and expire() end the match from any phase.

The session does no I/O. It emits Event objects to its listeners (normally
an EventRouter) while its lock is held, so every player observes transitions
in the order they happened.
"""

from __future__ import annotations

import logging
import random
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Iterator, List, Optional

from .battleship import Board, Outcome, Ship, ShotResult
from .config import Ruleset
from .coord_utils import Coordinate
from .errors import InvalidPhase, NoActiveSession
from .events import Category, Event, Mailbox
from .rules import Phase, Snapshot, adjudicate, check_phase, opponent_of

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Move:
    """One applied shot, as recorded in the session's move log."""

    player: str
    coord: Coordinate
    result: ShotResult
    at: float


class GameSession:
    """State of a single two-player match."""

    def __init__(
        self,
        session_id: str,
        ruleset: Ruleset | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.id = session_id
        self.ruleset = ruleset or Ruleset()
        self._clock = clock
        self._lock = threading.RLock()

        # Seats in join order; the opener rule indexes into this list
        self.players: List[str] = []
        self.boards: dict[str, Board] = {}
        self.mailboxes: dict[str, Mailbox] = {}

        self.phase = Phase.WAITING_FOR_PLAYERS
        self.turn: Optional[str] = None

        # Result reporting
        self.winner: Optional[str] = None
        self.end_reason: Optional[str] = None
        self.forced = False
        self.finished_at: Optional[float] = None

        self._moves: List[Move] = []
        self._acks: set[str] = set()
        self.last_activity = clock()

        self._listeners: List[Callable[[Event], None]] = []

    def __repr__(self) -> str:
        return f"<GameSession {self.id} {self.phase.value} players={self.players}>"

    # -------------------- event bus --------------------
    def add_listener(self, cb: Callable[[Event], None]) -> None:
        """Allow external components (router/logger) to receive game events."""
        self._listeners.append(cb)

    def _emit(self, ev: Event) -> None:
        for cb in tuple(self._listeners):
            try:
                cb(ev)
            except Exception:
                # A misbehaving listener must not break the match
                logger.exception("Session %s listener failed on %s", self.id, ev.type)

    # -------------------- helpers --------------------
    def _touch(self) -> None:
        self.last_activity = self._clock()

    def _new_board(self) -> Board:
        return Board(self.ruleset.board_size, self.ruleset.fleet)

    def _require_seat(self, player: str) -> None:
        if player not in self.players:
            raise NoActiveSession(f"{player} is not seated in session {self.id}")

    def _set_phase(self, phase: Phase) -> None:
        logger.debug("Session %s: %s -> %s", self.id, self.phase.value, phase.value)
        self.phase = phase
        self._emit(Event(Category.SYSTEM, "phase", {"phase": phase, "turn": self.turn}))

    def snapshot(self) -> Snapshot:
        with self._lock:
            return Snapshot(self.phase, tuple(self.players), self.turn, dict(self.boards))

    # -------------------- lifecycle --------------------
    def join(self, player: str) -> None:
        """Seat *player*; the second seat moves the session into SETUP."""
        with self._lock:
            check_phase(self.phase, Phase.WAITING_FOR_PLAYERS)
            if player in self.players:
                return
            self.players.append(player)
            self.boards[player] = self._new_board()
            self.mailboxes[player] = Mailbox(player)
            self._touch()
            self._emit(Event(Category.SYSTEM, "joined", {"player": player}))
            if len(self.players) == 2:
                logging.info(f"Session {self.id}: {self.players[0]} vs {self.players[1]} – placing fleets")
                self._set_phase(Phase.SETUP)

    def place_ships(self, player: str, ships: Iterable[Ship]) -> None:
        """
        Replace *player*'s fleet with *ships*.

        Either every ship is placed or InvalidPlacement is raised and the
        previous placement stays as it was. A partial fleet is accepted; the
        match starts once both boards hold the complete roster.
        """
        with self._lock:
            check_phase(self.phase, Phase.SETUP)
            self._require_seat(player)
            board = self._new_board()
            for ship in ships:
                board.place_ship(ship)
            self.boards[player] = board
            self._after_placement(player)

    def place_random(self, player: str, rng: random.Random | None = None) -> None:
        """Give *player* a random complete fleet."""
        with self._lock:
            check_phase(self.phase, Phase.SETUP)
            self._require_seat(player)
            board = self._new_board()
            board.place_ships_randomly(rng)
            self.boards[player] = board
            self._after_placement(player)

    def _after_placement(self, player: str) -> None:
        self._touch()
        self._emit(Event(Category.SETUP, "placed", {"player": player, "ready": self.boards[player].is_ready()}))
        if all(self.boards[p].is_ready() for p in self.players):
            self._start_play()

    def _start_play(self) -> None:
        first, second = self.players
        self.turn = first if self.ruleset.first_turn == "first" else second
        self._set_phase(Phase.ACTIVE)
        logging.info(f"Session {self.id}: fleets ready, {self.turn} fires first")
        self._emit(Event(Category.TURN, "prompt", {"player": self.turn}))

    # -------------------- gameplay --------------------
    def submit_move(self, player: str, coord: Iterable[int]) -> ShotResult:
        """Fire at *coord* on the opponent's board; returns the shot's result."""
        coord = Coordinate(*coord)
        with self._lock:
            adjudicate(self.snapshot(), player, coord)
            defender = opponent_of(tuple(self.players), player)
            board = self.boards[defender]
            if not board.is_ready():
                raise RuntimeError(f"Session {self.id} is active but {defender}'s fleet is incomplete")

            result = board.apply_shot(coord)
            self._moves.append(Move(player, coord, result, self._clock()))
            self._touch()
            logger.debug("Session %s: %s fired at %s -> %s", self.id, player, coord, result.outcome.value)
            self._emit(
                Event(
                    Category.TURN,
                    "shot",
                    {"attacker": player, "defender": defender, "coord": coord, "result": result},
                )
            )

            if result.outcome is Outcome.WIN:
                self._finish(player, reason="fleet destroyed", forced=False)
            else:
                self.turn = defender
                self._emit(Event(Category.TURN, "prompt", {"player": defender}))
            return result

    def forfeit(self, player: str, reason: str = "forfeit") -> None:
        """End the match at once; the other seated player (if any) wins."""
        with self._lock:
            self._require_seat(player)
            if self.phase is Phase.FINISHED:
                raise InvalidPhase(f"Session {self.id} is already finished")
            others = [p for p in self.players if p != player]
            logging.info(f"Session {self.id}: {player} left the match ({reason})")
            self._finish(others[0] if others else None, reason=reason, forced=True)

    def expire(self, reason: str = "timeout") -> bool:
        """
        Force-finish an idle session. Returns False if it had already finished.

        In ACTIVE play the player holding the turn loses. In SETUP a player who
        finished placing wins over one who did not; otherwise nobody wins.
        """
        with self._lock:
            if self.phase is Phase.FINISHED:
                return False
            winner: Optional[str] = None
            if self.phase is Phase.ACTIVE and self.turn is not None:
                winner = opponent_of(tuple(self.players), self.turn)
            elif self.phase is Phase.SETUP:
                ready = [p for p in self.players if self.boards[p].is_ready()]
                if len(ready) == 1:
                    winner = ready[0]
            self._finish(winner, reason=reason, forced=True)
            return True

    def _finish(self, winner: Optional[str], *, reason: str, forced: bool) -> None:
        self.winner = winner
        self.end_reason = reason
        self.forced = forced
        self.turn = None
        self.finished_at = self._clock()
        self._set_phase(Phase.FINISHED)
        shots = self.shots_by(winner) if winner else 0
        logging.info(f"Session {self.id} finished – winner={winner} reason={reason} shots={shots}")
        self._emit(
            Event(
                Category.SYSTEM,
                "end",
                {"winner": winner, "reason": reason, "forced": forced, "shots": shots},
            )
        )

    def acknowledge(self, player: str) -> bool:
        """Record that *player* has seen the result; True once both have."""
        with self._lock:
            self._require_seat(player)
            check_phase(self.phase, Phase.FINISHED)
            self._acks.add(player)
            return self._acks >= set(self.players)

    # -------------------- queries --------------------
    @property
    def moves(self) -> tuple[Move, ...]:
        with self._lock:
            return tuple(self._moves)

    def shots_by(self, player: str) -> int:
        with self._lock:
            return sum(1 for m in self._moves if m.player == player)

    def idle_for(self, now: float | None = None) -> float:
        now = self._clock() if now is None else now
        return now - self.last_activity

    def opponent(self, player: str) -> Optional[str]:
        with self._lock:
            self._require_seat(player)
            others = [p for p in self.players if p != player]
            return others[0] if others else None

    def view(self, player: str) -> dict[str, Any]:
        """State sync for *player*: own fleet revealed, opponent board fogged."""
        with self._lock:
            opp = self.opponent(player)
            return {
                "session": self.id,
                "phase": self.phase.value,
                "you": player,
                "opponent": opp,
                "your_turn": self.turn == player,
                "own": self.boards[player].grid_rows(reveal=True),
                "target": self.boards[opp].grid_rows(reveal=False) if opp else None,
                "moves": len(self._moves),
                "winner": self.winner,
                "reason": self.end_reason,
            }

    # -------------------- subscriptions --------------------
    def mailbox(self, player: str) -> Mailbox:
        with self._lock:
            self._require_seat(player)
            return self.mailboxes[player]

    def subscribe(self, player: str) -> Iterator[Any]:
        """Lazy stream of OutboundEvent for *player*; ends once the session is released."""
        return self.mailbox(player).stream()

    def close_mailboxes(self) -> None:
        with self._lock:
            for box in self.mailboxes.values():
                box.close()
