"""
battleship.py

Contains the core data structures and logic for a Battleship board:
 - ShipKind / Ship for the fleet roster and individual ship placements
 - Board for storing ship positions, hits and misses of one player
 - ShotResult / Outcome describing what a single shot did

A session owns one Board per player. When a player fires at their opponent,
the session calls opponent_board.apply_shot(...) and relays the result.
"""

from __future__ import annotations

import logging
import random
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Optional

from .config import BOARD_SIZE, SHIPS, SHIP_LETTERS
from .coord_utils import Coordinate
from .errors import DuplicateShot, InvalidPlacement, OutOfBounds

logger = logging.getLogger(__name__)

SHIP_SIZES = dict(SHIPS)

HORIZONTAL = "H"
VERTICAL = "V"


class ShipKind(str, Enum):
    """The five standard ship classes."""

    CARRIER = "Carrier"
    BATTLESHIP = "Battleship"
    CRUISER = "Cruiser"
    SUBMARINE = "Submarine"
    DESTROYER = "Destroyer"

    @property
    def length(self) -> int:
        return SHIP_SIZES[self.value]

    @property
    def letter(self) -> str:
        return SHIP_LETTERS[self.value]

    @classmethod
    def parse(cls, text: str) -> "ShipKind":
        """Look up a kind by name or board letter, case-insensitively."""
        needle = text.strip().lower()
        for kind in cls:
            if needle in (kind.value.lower(), kind.letter.lower()):
                return kind
        raise ValueError(f"Unknown ship kind: {text!r}")


def _as_kind(kind: ShipKind | str) -> ShipKind:
    if isinstance(kind, ShipKind):
        return kind
    try:
        return ShipKind.parse(kind)
    except ValueError as e:
        raise InvalidPlacement(str(e)) from None


def _is_horizontal(orientation: str | int) -> bool:
    # 0 => horizontal, 1 => vertical; letters H / V are accepted too
    if orientation in (0, HORIZONTAL, HORIZONTAL.lower()):
        return True
    if orientation in (1, VERTICAL, VERTICAL.lower()):
        return False
    raise InvalidPlacement(f"Orientation must be H or V, got {orientation!r}")


class CellState(Enum):
    EMPTY = "empty"
    SHIP = "ship"
    HIT = "hit"
    MISS = "miss"


class Outcome(str, Enum):
    MISS = "miss"
    HIT = "hit"
    SUNK = "sunk"
    WIN = "win"


@dataclass(frozen=True)
class ShotResult:
    """Result of a single shot. ``sunk`` is set for SUNK and WIN."""

    outcome: Outcome
    sunk: Optional[ShipKind] = None

    @property
    def is_hit(self) -> bool:
        return self.outcome is not Outcome.MISS


@dataclass
class Ship:
    """One ship: its kind, the cells it covers and which of them were hit."""

    kind: ShipKind
    cells: tuple[Coordinate, ...]
    hits: set[Coordinate] = field(default_factory=set)

    def __post_init__(self) -> None:
        self.kind = _as_kind(self.kind)
        self.cells = tuple(sorted(Coordinate(*c) for c in self.cells))

    @classmethod
    def at(cls, kind: ShipKind | str, row: int, col: int, orientation: str | int = HORIZONTAL) -> "Ship":
        """Ship of *kind* anchored at (*row*, *col*) running right (H) or down (V)."""
        kind = _as_kind(kind)
        if _is_horizontal(orientation):
            cells = [Coordinate(row, col + i) for i in range(kind.length)]
        else:
            cells = [Coordinate(row + i, col) for i in range(kind.length)]
        return cls(kind, tuple(cells))

    @classmethod
    def between(cls, kind: ShipKind | str, start: Iterable[int], end: Iterable[int]) -> "Ship":
        """Ship covering every cell from *start* to *end* inclusive."""
        start, end = Coordinate(*start), Coordinate(*end)
        if start.row == end.row:
            lo, hi = sorted((start.col, end.col))
            cells = [Coordinate(start.row, c) for c in range(lo, hi + 1)]
        elif start.col == end.col:
            lo, hi = sorted((start.row, end.row))
            cells = [Coordinate(r, start.col) for r in range(lo, hi + 1)]
        else:
            raise InvalidPlacement("Ship ends must share a row or a column")
        return cls(kind, tuple(cells))

    @property
    def sunk(self) -> bool:
        return bool(self.cells) and len(self.hits) == len(self.cells)

    def intersects(self, coord: Iterable[int]) -> bool:
        return Coordinate(*coord) in self.cells


class Board:
    """
    Represents a single Battleship board with hidden ships.

    We store:
      - self.ships: placed Ship objects, in placement order
      - self._occupied: Coordinate -> Ship for every covered cell
      - self._shots: Coordinate -> CellState.HIT / CellState.MISS for every
        coordinate that has been targeted

    Nothing here is shared between boards; every mutation stays on *self*.
    """

    def __init__(self, size: int = BOARD_SIZE, fleet: Iterable[ShipKind | str] | None = None):
        """Initialise an empty *size*×*size* board expecting *fleet* (standard roster by default)."""
        self.size = size
        names = fleet if fleet is not None else [name for name, _ in SHIPS]
        self.fleet: tuple[ShipKind, ...] = tuple(_as_kind(k) for k in names)
        self.ships: list[Ship] = []
        self._occupied: dict[Coordinate, Ship] = {}
        self._shots: dict[Coordinate, CellState] = {}

    # -------------------- placement --------------------
    def place_ship(self, ship: Ship) -> None:
        """
        Add a copy of *ship* to the board or raise InvalidPlacement leaving the
        board untouched.

        Only the kind and cells are taken; the board tracks hits on its own
        copy, so one Ship may be placed on several boards.
        """
        problem = self._placement_error(ship)
        if problem:
            logger.debug("rejecting %s at %s: %s", ship.kind.value, ship.cells, problem)
            raise InvalidPlacement(problem)
        ship = Ship(ship.kind, ship.cells)
        self.ships.append(ship)
        for cell in ship.cells:
            self._occupied[cell] = ship

    def _placement_error(self, ship: Ship) -> str | None:
        name = ship.kind.value
        missing = Counter(self.fleet) - Counter(s.kind for s in self.ships)
        if missing[ship.kind] <= 0:
            if ship.kind in self.fleet:
                return f"{name} has already been placed"
            return f"{name} is not part of this fleet"

        cells = ship.cells
        if len(cells) != ship.kind.length:
            return f"{name} must cover {ship.kind.length} cells, got {len(cells)}"
        if len(set(cells)) != len(cells):
            return f"{name} covers the same cell twice"
        for cell in cells:
            if not cell.in_bounds(self.size):
                return f"{name} extends off the board at {tuple(cell)}"

        rows = {c.row for c in cells}
        cols = {c.col for c in cells}
        if len(rows) == 1:
            span = [c.col for c in cells]
        elif len(cols) == 1:
            span = [c.row for c in cells]
        else:
            return f"{name} is not in a straight line"
        if span != list(range(span[0], span[0] + len(span))):
            return f"{name} has gaps between its cells"

        for cell in cells:
            other = self._occupied.get(cell)
            if other is not None:
                return f"{name} overlaps {other.kind.value} at {cell}"
        return None

    def is_ready(self) -> bool:
        """True once exactly the fleet roster has been placed."""
        return Counter(s.kind for s in self.ships) == Counter(self.fleet)

    def place_ships_randomly(self, rng: random.Random | None = None) -> None:
        """Randomly position every not-yet-placed ship of the fleet without collisions."""
        rng = rng or random.Random()
        missing = Counter(self.fleet) - Counter(s.kind for s in self.ships)
        for kind in self.fleet:
            if missing[kind] <= 0:
                continue
            missing[kind] -= 1
            for _ in range(10_000):
                orientation = rng.choice((HORIZONTAL, VERTICAL))
                row = rng.randrange(self.size)
                col = rng.randrange(self.size)
                ship = Ship.at(kind, row, col, orientation)
                if self._placement_error(ship) is None:
                    self.place_ship(ship)
                    break
            else:
                raise InvalidPlacement(f"No room left for {kind.value} on a {self.size}x{self.size} board")

    # -------------------- shooting --------------------
    def preview_shot(self, coord: Iterable[int]) -> ShotResult:
        """Return what apply_shot(*coord*) would produce, without changing the board."""
        coord = Coordinate(*coord)
        if not coord.in_bounds(self.size):
            raise OutOfBounds(f"{tuple(coord)} is outside the {self.size}x{self.size} board")
        if coord in self._shots:
            raise DuplicateShot(f"Already fired at {coord}")
        ship = self._occupied.get(coord)
        if ship is None:
            return ShotResult(Outcome.MISS)
        if len(ship.hits) + 1 < len(ship.cells):
            return ShotResult(Outcome.HIT)
        if all(other.sunk for other in self.ships if other is not ship):
            return ShotResult(Outcome.WIN, ship.kind)
        return ShotResult(Outcome.SUNK, ship.kind)

    def apply_shot(self, coord: Iterable[int]) -> ShotResult:
        """Process a shot at *coord* and return its ShotResult."""
        coord = Coordinate(*coord)
        result = self.preview_shot(coord)
        if result.is_hit:
            self._shots[coord] = CellState.HIT
            self._occupied[coord].hits.add(coord)
        else:
            self._shots[coord] = CellState.MISS
        return result

    # -------------------- queries --------------------
    def cell(self, coord: Iterable[int]) -> CellState:
        coord = Coordinate(*coord)
        if coord in self._shots:
            return self._shots[coord]
        return CellState.SHIP if coord in self._occupied else CellState.EMPTY

    def ship_at(self, coord: Iterable[int]) -> Ship | None:
        return self._occupied.get(Coordinate(*coord))

    def targeted(self) -> frozenset[Coordinate]:
        return frozenset(self._shots)

    def all_ships_sunk(self) -> bool:
        """Return True if every ship on this board has been sunk."""
        return bool(self.ships) and all(ship.sunk for ship in self.ships)

    def grid_rows(self, *, reveal: bool = False) -> list[str]:
        """ASCII rows: 'X' hit, 'o' miss, ship letters only when *reveal* is set."""
        rows: list[str] = []
        for r in range(self.size):
            cells = []
            for c in range(self.size):
                coord = Coordinate(r, c)
                state = self._shots.get(coord)
                if state is CellState.HIT:
                    cells.append("X")
                elif state is CellState.MISS:
                    cells.append("o")
                elif reveal and coord in self._occupied:
                    cells.append(self._occupied[coord].kind.letter)
                else:
                    cells.append(".")
            rows.append(" ".join(cells))
        return rows
