import re
from typing import NamedTuple

# Regex for coordinate labels: one row letter followed by a 1-based column
COORD_RE = re.compile(r"^([A-Z])([1-9][0-9]?)$")


class Coordinate(NamedTuple):
    """Zero-based (row, col) position on a board."""

    row: int
    col: int

    def in_bounds(self, size: int) -> bool:
        return 0 <= self.row < size and 0 <= self.col < size

    def __str__(self) -> str:
        return format_coord(self.row, self.col)


def coord_to_rowcol(coord: str) -> Coordinate:
    """
    Convert a coordinate like 'A1' or 'J10' to a zero-based Coordinate.

    Raises ValueError for anything that is not a letter followed by a number.
    Bounds are checked by the board, not here.
    """
    text = coord.strip().upper()
    match = COORD_RE.match(text)
    if not match:
        raise ValueError(f"Invalid coordinate: {coord!r}")
    row = ord(match.group(1)) - ord("A")
    col = int(match.group(2)) - 1
    return Coordinate(row, col)


def format_coord(row: int, col: int) -> str:
    """
    Convert zero-based (row, col) to coordinate string like 'A1'.
    """
    return f"{chr(ord('A') + row)}{col + 1}"
