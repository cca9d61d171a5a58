"""Idle expiry and release by the registry sweeper."""

import time

import pytest

from salvo.errors import NoActiveSession
from salvo.registry import SessionRegistry
from salvo.rules import Phase
from tests.conftest import standard_fleet


def _active(registry):
    registry.enqueue("alice")
    session = registry.enqueue("bob")
    registry.place_ships("alice", standard_fleet())
    registry.place_ships("bob", standard_fleet())
    return session


def test_sweep_leaves_busy_sessions_alone(registry, clock):
    session = _active(registry)
    clock.advance(29)
    assert registry.sweep() == []
    assert session.phase is Phase.ACTIVE


def test_moves_reset_the_idle_clock(registry, clock):
    session = _active(registry)
    clock.advance(20)
    registry.submit_move("alice", (9, 9))
    clock.advance(20)
    registry.sweep()
    assert session.phase is Phase.ACTIVE


def test_idle_session_expires_then_releases(registry, clock):
    session = _active(registry)
    registry.submit_move("alice", (9, 9))
    clock.advance(30)

    assert registry.sweep() == []
    assert session.phase is Phase.FINISHED
    assert session.end_reason == "timeout"
    # bob was on turn and idle
    assert session.winner == "alice"
    assert registry.lookup("alice") is session

    clock.advance(10)
    assert registry.sweep() == [session]
    with pytest.raises(NoActiveSession):
        registry.lookup("alice")
    assert list(session.subscribe("bob"))[-1].type == "end"


@pytest.mark.timeout(10)
def test_background_sweeper_expires_idle_session():
    with SessionRegistry(idle_timeout=0.05, release_timeout=0.05, sweep_interval=0.02) as reg:
        reg.enqueue("alice")
        session = reg.enqueue("bob")
        deadline = time.monotonic() + 5
        while reg.sessions() and time.monotonic() < deadline:
            time.sleep(0.02)
    assert session.phase is Phase.FINISHED
    assert session.forced
    assert reg.sessions() == ()
