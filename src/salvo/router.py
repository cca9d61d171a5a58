"""Translate internal GameSession events into per-player outbound events.

The router lives *outside* GameSession so that translation rules are declared
in a single place and can evolve without touching core game logic. It is also
straight-forward to unit-test by feeding synthetic Event objects.

Visibility rule: a player only ever receives their *own* board in full. About
the opponent's board they learn the coordinate and outcome of each shot, and
the cells of a ship once it has been sunk, nothing more.
"""

from __future__ import annotations

import logging
from typing import Any

from .events import Category, Event, OutboundEvent
from .session import GameSession

logger = logging.getLogger(__name__)


class EventRouter:
    """Session-scoped helper that converts `Event` → mailbox posts."""

    def __init__(self, session: "GameSession") -> None:
        self._s = session

    # ------------------------------------------------------------------
    # Public dispatch entry
    # ------------------------------------------------------------------
    def __call__(self, ev: Event) -> None:  # GameSession calls router(event)
        try:
            self.dispatch(ev)
        except Exception:  # noqa: BLE001
            logger.exception("Event routing failed for %s", ev)

    # ------------------------------------------------------------------
    # Internal dispatch
    # ------------------------------------------------------------------
    def dispatch(self, ev: Event) -> None:
        cat = ev.category
        if cat is Category.TURN:
            self._handle_turn(ev)
        elif cat is Category.SETUP:
            self._handle_setup(ev)
        elif cat is Category.SYSTEM:
            self._handle_system(ev)
        else:  # pragma: no cover – unknown category
            logger.debug("Ignoring event %s", ev)

    # ------------------------------------------------------------------
    # Category handlers
    # ------------------------------------------------------------------
    def _handle_turn(self, ev: Event) -> None:
        t = ev.type
        if t == "prompt":
            current = ev.payload["player"]
            for player in self._s.players:
                self._unicast(player, "turn", {"yours": player == current})
        elif t == "shot":
            attacker = ev.payload["attacker"]
            defender = ev.payload["defender"]
            result = ev.payload["result"]
            coord = ev.payload["coord"]
            shot: dict[str, Any] = {
                "coord": str(coord),
                "outcome": result.outcome.value,
                "sunk": result.sunk.value if result.sunk else None,
            }
            if result.sunk:
                ship = self._s.boards[defender].ship_at(coord)
                shot["sunk_cells"] = [str(c) for c in ship.cells]
            self._unicast(attacker, "shot", {**shot, "by": "you"})
            # the defender may see their own board in full
            self._unicast(
                defender,
                "shot",
                {**shot, "by": "opponent", "own": self._s.boards[defender].grid_rows(reveal=True)},
            )
        else:
            logger.debug("Unhandled TURN event: %s", ev)

    def _handle_setup(self, ev: Event) -> None:
        if ev.type != "placed":
            return
        player = ev.payload["player"]
        ready = ev.payload["ready"]
        self._unicast(player, "fleet", {"ready": ready, "own": self._s.boards[player].grid_rows(reveal=True)})
        for other in self._others(player):
            self._unicast(other, "opponent_fleet", {"ready": ready})

    def _handle_system(self, ev: Event) -> None:
        t = ev.type
        if t == "joined":
            logger.info(f"{ev.payload['player']} joined session {self._s.id}")
        elif t == "phase":
            phase = ev.payload["phase"]
            for player in self._s.players:
                opponent = next(iter(self._others(player)), None)
                self._unicast(player, "phase", {"phase": phase.value, "opponent": opponent})
        elif t == "end":
            winner = ev.payload["winner"]
            for player in self._s.players:
                if winner is None:
                    result = "none"
                else:
                    result = "win" if player == winner else "lose"
                self._unicast(
                    player,
                    "end",
                    {
                        "result": result,
                        "winner": winner,
                        "reason": ev.payload["reason"],
                        "forced": ev.payload["forced"],
                        "shots": ev.payload["shots"],
                    },
                )
        else:
            logger.debug("Unhandled SYSTEM event: %s", ev)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _others(self, player: str) -> list[str]:
        return [p for p in self._s.players if p != player]

    def _unicast(self, player: str, kind: str, payload: dict[str, Any]) -> None:
        box = self._s.mailboxes.get(player)
        if box is None:
            logger.debug("No mailbox for %s in session %s", player, self._s.id)
            return
        box.put(OutboundEvent(player, self._s.id, kind, payload))
