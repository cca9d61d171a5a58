import random
import threading

import pytest

from salvo.errors import AlreadyInSession, InvalidPhase, NoActiveSession, NotWaiting
from salvo.registry import SessionRegistry
from salvo.rules import Phase
from tests.conftest import standard_fleet


def test_lone_player_waits(registry):
    assert registry.enqueue("alice") is None
    assert registry.waiting() == ("alice",)
    with pytest.raises(NoActiveSession):
        registry.lookup("alice")


def test_second_player_pairs_immediately(registry):
    registry.enqueue("alice")
    session = registry.enqueue("bob")
    assert session is not None
    assert session.phase is Phase.SETUP
    assert registry.lookup("alice") is session
    assert registry.lookup("bob") is session
    assert session.players == ["alice", "bob"]
    assert registry.waiting() == ()


def test_fifo_pairing(registry):
    for p in ("p1", "p2", "p3", "p4", "p5"):
        registry.enqueue(p)
    assert registry.lookup("p1") is registry.lookup("p2")
    assert registry.lookup("p3") is registry.lookup("p4")
    assert registry.lookup("p1") is not registry.lookup("p3")
    assert registry.waiting() == ("p5",)


def test_enqueue_twice_is_noop(registry):
    registry.enqueue("alice")
    assert registry.enqueue("alice") is None
    assert registry.waiting() == ("alice",)


def test_enqueue_while_playing_rejected(registry):
    registry.enqueue("alice")
    registry.enqueue("bob")
    with pytest.raises(AlreadyInSession):
        registry.enqueue("alice")


def test_dequeue(registry):
    registry.enqueue("alice")
    registry.dequeue("alice")
    assert registry.waiting() == ()
    with pytest.raises(NotWaiting):
        registry.dequeue("alice")


def test_dequeue_seated_player_is_not_waiting(registry):
    registry.enqueue("alice")
    registry.enqueue("bob")
    with pytest.raises(NotWaiting):
        registry.dequeue("alice")


def test_release_requires_finished(registry):
    registry.enqueue("alice")
    session = registry.enqueue("bob")
    with pytest.raises(InvalidPhase):
        registry.release(session)


def test_acknowledge_releases_after_both(registry):
    registry.enqueue("alice")
    session = registry.enqueue("bob")
    registry.forfeit("alice")
    assert registry.lookup("bob") is session
    assert registry.acknowledge("alice") is False
    assert registry.acknowledge("bob") is True
    for p in ("alice", "bob"):
        with pytest.raises(NoActiveSession):
            registry.lookup(p)
    assert session.mailbox("alice").closed
    assert registry.sessions() == ()


def test_requeue_after_finished_match(registry):
    registry.enqueue("alice")
    first = registry.enqueue("bob")
    registry.forfeit("bob")
    # alice moves on without acknowledging
    assert registry.enqueue("alice") is None
    assert registry.waiting() == ("alice",)
    with pytest.raises(NoActiveSession):
        registry.lookup("alice")
    assert registry.lookup("bob") is first
    assert registry.acknowledge("bob") is True
    assert first not in registry.sessions()
    with pytest.raises(NoActiveSession):
        registry.lookup("bob")


@pytest.mark.timeout(5)
def test_requeue_after_opponent_acknowledged_releases(registry):
    registry.enqueue("alice")
    first = registry.enqueue("bob")
    registry.forfeit("bob")
    assert registry.acknowledge("bob") is False
    assert registry.enqueue("alice") is None
    assert registry.sessions() == ()
    assert list(first.subscribe("bob"))[-1].type == "end"


def test_disconnect_waiting_and_playing(registry):
    registry.enqueue("alice")
    registry.disconnect("alice")
    assert registry.waiting() == ()

    registry.enqueue("alice")
    session = registry.enqueue("bob")
    registry.disconnect("bob")
    assert session.phase is Phase.FINISHED
    assert session.winner == "alice"
    assert session.end_reason == "disconnect"
    # second disconnect is harmless
    registry.disconnect("bob")
    registry.disconnect("nobody")


def test_routing_helpers_play_a_move(registry):
    registry.enqueue("alice")
    session = registry.enqueue("bob")
    registry.place_ships("alice", standard_fleet())
    registry.place_random("bob", random.Random(1))
    assert session.phase is Phase.ACTIVE
    result = registry.submit_move("alice", (0, 0))
    assert session.moves[-1].result == result


def test_on_paired_callback_outside_lock(clock):
    seen = []
    reg = SessionRegistry(clock=clock)

    def on_paired(session):
        # re-entering the registry must not deadlock
        seen.append((session.id, reg.lookup(session.players[0]).id))

    reg.on_paired = on_paired
    reg.enqueue("a")
    session = reg.enqueue("b")
    assert seen == [(session.id, session.id)]


@pytest.mark.timeout(10)
def test_concurrent_enqueue_pairs_everyone_once(clock):
    reg = SessionRegistry(clock=clock)
    players = [f"p{i}" for i in range(40)]
    barrier = threading.Barrier(len(players))

    def join(p):
        barrier.wait()
        reg.enqueue(p)

    threads = [threading.Thread(target=join, args=(p,)) for p in players]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    sessions = reg.sessions()
    assert len(sessions) == 20
    seated = [p for s in sessions for p in s.players]
    assert sorted(seated) == sorted(players)
