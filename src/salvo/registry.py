"""Matchmaker and live-session registry.

The registry owns the waiting pool and the table of live sessions. One lock
guards both; each GameSession carries its own lock for in-match state. Lock
order is always registry -> session, and sessions never call back in here.

Pairing is strictly FIFO: the first two waiting players share the next
session. Finished sessions stay visible to lookup() until both players have
acknowledged the result, or until the sweeper releases them.
"""

from __future__ import annotations

import itertools
import logging
import random
import threading
import time
from typing import Callable, Iterable, Iterator, Optional

from . import config as _cfg
from .battleship import Ship, ShotResult
from .config import Ruleset
from .errors import AlreadyInSession, InvalidPhase, NoActiveSession, NotWaiting
from .events import OutboundEvent
from .router import EventRouter
from .rules import Phase
from .session import GameSession

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Pairs waiting players into sessions and owns every live session."""

    def __init__(
        self,
        ruleset: Ruleset | None = None,
        *,
        idle_timeout: float = _cfg.IDLE_TIMEOUT,
        release_timeout: float = _cfg.RELEASE_TIMEOUT,
        sweep_interval: float = _cfg.SWEEP_INTERVAL,
        on_paired: Callable[[GameSession], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ruleset = ruleset or Ruleset()
        self.idle_timeout = idle_timeout
        self.release_timeout = release_timeout
        self.sweep_interval = sweep_interval
        self.on_paired = on_paired
        self._clock = clock

        self._lock = threading.Lock()
        self._waiting: list[str] = []
        self._sessions: dict[str, GameSession] = {}
        self._by_player: dict[str, GameSession] = {}
        self._ids = itertools.count(1)

        self._stop = threading.Event()
        self._sweeper: threading.Thread | None = None

    # -------------------- matchmaking --------------------
    def enqueue(self, player: str) -> Optional[GameSession]:
        """
        Add *player* to the waiting pool.

        Returns the new session when this call completes a pair, otherwise
        None (the player waits). Queuing twice is a no-op.
        """
        finished = None
        with self._lock:
            current = self._by_player.get(player)
            if current is not None:
                if current.phase is not Phase.FINISHED:
                    raise AlreadyInSession(f"{player} is still playing in session {current.id}")
                # moving on from a finished match acknowledges it
                if current.acknowledge(player):
                    self._drop(current)
                    finished = current
                else:
                    self._detach(player, current)
            if player in self._waiting:
                session = None
            else:
                session = self._pair(player)

        if finished is not None:
            finished.close_mailboxes()
            logger.info(f"Released session {finished.id}")
        if session is not None and self.on_paired:
            try:
                self.on_paired(session)
            except Exception:
                logger.exception("on_paired callback failed for session %s", session.id)
        return session

    def _pair(self, player: str) -> Optional[GameSession]:
        # caller holds self._lock
        self._waiting.append(player)
        logger.info(f"Lobby update: {player} joined (waiting={len(self._waiting)})")
        if len(self._waiting) < 2:
            return None
        first = self._waiting.pop(0)
        second = self._waiting.pop(0)
        return self._create_session(first, second)

    def _create_session(self, first: str, second: str) -> GameSession:
        session = GameSession(f"G{next(self._ids):06d}", self.ruleset, clock=self._clock)
        session.add_listener(EventRouter(session))
        session.join(first)
        session.join(second)
        self._sessions[session.id] = session
        self._by_player[first] = session
        self._by_player[second] = session
        logger.info(f"Launching session {session.id}: {first} vs {second}")
        return session

    def dequeue(self, player: str) -> None:
        """Remove a waiting player from the pool."""
        with self._lock:
            if player not in self._waiting:
                if player in self._by_player:
                    raise NotWaiting(f"{player} is already in session {self._by_player[player].id}")
                raise NotWaiting(f"{player} is not waiting")
            self._waiting.remove(player)
            logger.info(f"Lobby update: {player} left (waiting={len(self._waiting)})")

    def lookup(self, player: str) -> GameSession:
        """Return *player*'s live session or raise NoActiveSession."""
        with self._lock:
            session = self._by_player.get(player)
        if session is None:
            raise NoActiveSession(f"{player} has no active session")
        return session

    def get(self, session_id: str) -> GameSession:
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise NoActiveSession(f"Unknown session {session_id}")
        return session

    def waiting(self) -> tuple[str, ...]:
        with self._lock:
            return tuple(self._waiting)

    def sessions(self) -> tuple[GameSession, ...]:
        with self._lock:
            return tuple(self._sessions.values())

    def is_waiting(self, player: str) -> bool:
        with self._lock:
            return player in self._waiting

    # -------------------- session lifetime --------------------
    def release(self, session: GameSession) -> None:
        """Drop a finished session from the live table and close its streams."""
        if session.phase is not Phase.FINISHED:
            raise InvalidPhase(f"Session {session.id} is {session.phase.value}, not finished")
        with self._lock:
            if not self._drop(session):
                return
        session.close_mailboxes()
        logger.info(f"Released session {session.id}")

    def _drop(self, session: GameSession) -> bool:
        # caller holds self._lock
        if self._sessions.pop(session.id, None) is None:
            return False
        for player in session.players:
            self._detach(player, session)
        return True

    def _detach(self, player: str, session: GameSession) -> None:
        # caller holds self._lock
        if self._by_player.get(player) is session:
            del self._by_player[player]

    def acknowledge(self, player: str) -> bool:
        """Mark the result seen by *player*; releases the session once both have. Returns True on release."""
        session = self.lookup(player)
        if session.acknowledge(player):
            self.release(session)
            return True
        return False

    def disconnect(self, player: str) -> None:
        """Transport lost *player*: leave the pool, or forfeit a running match."""
        with self._lock:
            if player in self._waiting:
                self._waiting.remove(player)
                logger.info(f"Lobby update: {player} disconnected while waiting")
                return
            session = self._by_player.get(player)
        if session is None or session.phase is Phase.FINISHED:
            return
        try:
            session.forfeit(player, reason="disconnect")
        except InvalidPhase:
            # finished concurrently (last shot or sweeper)
            logger.debug("Session %s ended before %s's disconnect was applied", session.id, player)

    # -------------------- routing helpers --------------------
    def place_ships(self, player: str, ships: Iterable[Ship]) -> None:
        self.lookup(player).place_ships(player, ships)

    def place_random(self, player: str, rng: random.Random | None = None) -> None:
        self.lookup(player).place_random(player, rng)

    def submit_move(self, player: str, coord: Iterable[int]) -> ShotResult:
        return self.lookup(player).submit_move(player, coord)

    def forfeit(self, player: str, reason: str = "forfeit") -> None:
        self.lookup(player).forfeit(player, reason)

    def subscribe(self, player: str) -> Iterator[OutboundEvent]:
        return self.lookup(player).subscribe(player)

    # -------------------- sweeping --------------------
    def sweep(self, now: float | None = None) -> list[GameSession]:
        """
        Expire idle sessions and release stale finished ones.

        Returns the sessions released by this pass.
        """
        now = self._clock() if now is None else now
        released: list[GameSession] = []
        for session in self.sessions():
            if session.phase is not Phase.FINISHED:
                if session.idle_for(now) >= self.idle_timeout and session.expire("timeout"):
                    logger.info(f"Session {session.id} expired after {self.idle_timeout}s idle")
                continue
            if session.finished_at is not None and now - session.finished_at >= self.release_timeout:
                self.release(session)
                released.append(session)
        return released

    def _sweep_loop(self) -> None:
        while not self._stop.wait(self.sweep_interval):
            try:
                self.sweep()
            except Exception:
                logger.exception("Session sweep failed")

    def start(self) -> "SessionRegistry":
        """Start the background sweeper thread."""
        if self._sweeper is None or not self._sweeper.is_alive():
            self._stop.clear()
            self._sweeper = threading.Thread(target=self._sweep_loop, name="salvo-sweeper", daemon=True)
            self._sweeper.start()
        return self

    def stop(self) -> None:
        self._stop.set()
        if self._sweeper is not None:
            self._sweeper.join(timeout=5)
            self._sweeper = None

    def __enter__(self) -> "SessionRegistry":
        return self.start()

    def __exit__(self, *exc: object) -> None:
        self.stop()
