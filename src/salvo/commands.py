"""Typed player commands and their dispatch onto the session registry.

Transports turn each client line into exactly one of the command variants
below with parse_command(), then hand it to execute(). The set is closed:
execute() knows every variant and rejects anything else.

Line syntax
-----------
JOIN                                  Enter the matchmaking queue
LEAVE                                 Leave the queue
PLACE RANDOM                          Let the server place a full fleet
PLACE <kind> <coord> <H|V>[, ...]     Place ships by anchor + orientation
PLACE <kind> <coord> <coord>[, ...]   Place ships by their two end cells
FIRE <coord>                          Shoot at the opponent's board
QUIT                                  Forfeit the current match
ACK                                   Acknowledge a finished match
STATE                                 Ask for a fresh view of the match
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union

from .battleship import HORIZONTAL, VERTICAL, Ship, ShipKind
from .coord_utils import COORD_RE, Coordinate, coord_to_rowcol
from .registry import SessionRegistry


class CommandParseError(Exception):
    """Raised when a line cannot be parsed as a valid command."""


@dataclass(frozen=True)
class JoinCommand:
    pass


@dataclass(frozen=True)
class LeaveCommand:
    pass


@dataclass(frozen=True)
class ShipSpec:
    """Requested placement: anchor + orientation, or anchor + far end."""

    kind: ShipKind
    start: Coordinate
    orientation: str | None = None
    end: Coordinate | None = None

    def build(self) -> Ship:
        if self.end is not None:
            return Ship.between(self.kind, self.start, self.end)
        return Ship.at(self.kind, self.start.row, self.start.col, self.orientation or HORIZONTAL)


@dataclass(frozen=True)
class PlaceCommand:
    ships: tuple[ShipSpec, ...] = ()
    random: bool = False


@dataclass(frozen=True)
class FireCommand:
    row: int
    col: int


@dataclass(frozen=True)
class QuitCommand:
    pass


@dataclass(frozen=True)
class AckCommand:
    pass


@dataclass(frozen=True)
class StateCommand:
    pass


Command = Union[
    JoinCommand, LeaveCommand, PlaceCommand, FireCommand, QuitCommand, AckCommand, StateCommand
]

_BARE = {
    "JOIN": JoinCommand,
    "LEAVE": LeaveCommand,
    "QUIT": QuitCommand,
    "ACK": AckCommand,
    "STATE": StateCommand,
}


def _parse_coord(text: str) -> Coordinate:
    coord = text.strip().upper()
    if not COORD_RE.match(coord):
        raise CommandParseError(f"Invalid coordinate: {coord}")
    return coord_to_rowcol(coord)


def _parse_ship(group: str) -> ShipSpec:
    parts = group.split()
    if len(parts) != 3:
        raise CommandParseError(f"Ship placement needs <kind> <coord> <H|V|coord>, got {group.strip()!r}")
    try:
        kind = ShipKind.parse(parts[0])
    except ValueError as e:
        raise CommandParseError(str(e)) from None
    start = _parse_coord(parts[1])
    tail = parts[2].upper()
    if tail in (HORIZONTAL, VERTICAL):
        return ShipSpec(kind, start, orientation=tail)
    return ShipSpec(kind, start, end=_parse_coord(tail))


def parse_command(line: str) -> Command:
    if line is None:
        raise CommandParseError("No command to parse")
    raw = line.strip()
    if not raw:
        raise CommandParseError("Empty command")
    parts = raw.split(maxsplit=1)
    verb = parts[0].upper()
    if verb in _BARE and len(parts) == 1:
        return _BARE[verb]()
    elif verb == "FIRE":
        if len(parts) < 2 or not parts[1].strip():
            raise CommandParseError("FIRE requires a coordinate")
        coord = _parse_coord(parts[1])
        return FireCommand(row=coord.row, col=coord.col)
    elif verb == "PLACE":
        if len(parts) < 2 or not parts[1].strip():
            raise CommandParseError("PLACE requires RANDOM or a list of ships")
        if parts[1].strip().upper() == "RANDOM":
            return PlaceCommand(random=True)
        groups = [g for g in parts[1].split(",") if g.strip()]
        return PlaceCommand(ships=tuple(_parse_ship(g) for g in groups))
    else:
        raise CommandParseError(f"Unknown command: {raw}")


def execute(registry: SessionRegistry, player: str, cmd: Command) -> dict[str, Any]:
    """
    Apply *cmd* on behalf of *player* and return a small reply payload.

    GameError subclasses propagate unchanged; reporting them to the player
    and discarding the command is the transport's job.
    """
    match cmd:
        case JoinCommand():
            session = registry.enqueue(player)
            if session is None:
                return {"queued": True, "waiting": len(registry.waiting())}
            return {"session": session.id, "phase": session.phase.value}
        case LeaveCommand():
            registry.dequeue(player)
            return {"queued": False}
        case PlaceCommand(random=True):
            registry.place_random(player)
            return {"placed": "random"}
        case PlaceCommand(ships=ships):
            registry.place_ships(player, [spec.build() for spec in ships])
            return {"placed": len(ships)}
        case FireCommand(row=row, col=col):
            result = registry.submit_move(player, (row, col))
            return {
                "coord": str(Coordinate(row, col)),
                "outcome": result.outcome.value,
                "sunk": result.sunk.value if result.sunk else None,
            }
        case QuitCommand():
            registry.forfeit(player)
            return {"forfeited": True}
        case AckCommand():
            return {"released": registry.acknowledge(player)}
        case StateCommand():
            return registry.lookup(player).view(player)
        case _:
            raise TypeError(f"Unsupported command: {cmd!r}")
