import logging

import pytest

from salvo.battleship import Ship
from salvo.config import Ruleset
from salvo.registry import SessionRegistry
from salvo.router import EventRouter
from salvo.rules import Phase
from salvo.session import GameSession

# Suppress INFO & DEBUG logs from the engine during tests
logging.basicConfig(level=logging.WARNING)


class FakeClock:
    """Manually advanced monotonic clock for timeout tests."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def standard_fleet() -> list[Ship]:
    """Full standard fleet, one ship per row starting at column 0."""
    return [
        Ship.at("Carrier", 0, 0, "H"),
        Ship.at("Battleship", 1, 0, "H"),
        Ship.at("Cruiser", 2, 0, "H"),
        Ship.at("Submarine", 3, 0, "H"),
        Ship.at("Destroyer", 4, 0, "H"),
    ]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def registry(clock: FakeClock) -> SessionRegistry:
    return SessionRegistry(idle_timeout=30, release_timeout=10, clock=clock)


@pytest.fixture
def session_factory(clock: FakeClock):
    """Factory for a routed GameSession with both players seated (SETUP phase)."""

    def _factory(ruleset: Ruleset | None = None, players=("alice", "bob")) -> GameSession:
        sess = GameSession("T1", ruleset, clock=clock)
        sess.add_listener(EventRouter(sess))
        for p in players:
            sess.join(p)
        return sess

    return _factory


@pytest.fixture
def active_session(session_factory):
    """Session in ACTIVE play; alice (first joiner) holds the turn."""

    def _factory(ruleset: Ruleset | None = None) -> GameSession:
        sess = session_factory(ruleset)
        fleet = standard_fleet() if ruleset is None else [Ship.at(k, i, 0, "H") for i, k in enumerate(ruleset.fleet)]
        sess.place_ships("alice", fleet)
        fleet = standard_fleet() if ruleset is None else [Ship.at(k, i, 0, "H") for i, k in enumerate(ruleset.fleet)]
        sess.place_ships("bob", fleet)
        assert sess.phase is Phase.ACTIVE
        return sess

    return _factory
