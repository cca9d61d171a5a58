"""Central configuration for runtime-tunable parameters.

All constants can be overridden via environment variables so that the
production server runs with sensible defaults, while the automated
test-suite can shrink timeouts or the board where it needs to.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from typing_extensions import Literal

FirstTurn = Literal["first", "second"]


# ===========================================================================
# Network Defaults
# ===========================================================================
# SALVO_HOST: Default host address for the line server to bind to.
#   Defaults to "127.0.0.1".
#   Example: export SALVO_HOST=0.0.0.0
DEFAULT_HOST: str = os.getenv("SALVO_HOST", "127.0.0.1")

# SALVO_PORT: Default port for the line server to listen on.
#   Defaults to 61337.
#   Example: export SALVO_PORT=5001
DEFAULT_PORT: int = int(os.getenv("SALVO_PORT", "61337"))


# ===========================================================================
# Session Lifetime
# ===========================================================================
# SALVO_IDLE_TIMEOUT: seconds without a move (or placement) before a session
#   in setup or active play is forcibly finished by the sweeper.
#   Defaults to 300 seconds. Example: export SALVO_IDLE_TIMEOUT=60
IDLE_TIMEOUT: float = float(os.getenv("SALVO_IDLE_TIMEOUT", "300"))

# SALVO_RELEASE_TIMEOUT: seconds a finished session stays in the live table
#   waiting for both players to acknowledge the result.
#   Defaults to 60 seconds.
RELEASE_TIMEOUT: float = float(os.getenv("SALVO_RELEASE_TIMEOUT", "60"))

# SALVO_SWEEP_INTERVAL: how often (seconds) the background sweeper wakes up.
#   Defaults to 5 seconds.
SWEEP_INTERVAL: float = float(os.getenv("SALVO_SWEEP_INTERVAL", "5"))


# ===========================================================================
# Game Constants
# ===========================================================================
# SALVO_BOARD_SIZE: Defines the width and height of the game board.
#   Defaults to 10 (for a 10x10 grid).
#   Example: export SALVO_BOARD_SIZE=8
BOARD_SIZE: int = int(os.getenv("SALVO_BOARD_SIZE", "10"))

# Standard ship roster: list of (name, size) tuples. Not typically overridden by env vars.
SHIPS = [
    ("Carrier", 5),
    ("Battleship", 4),
    ("Cruiser", 3),
    ("Submarine", 3),
    ("Destroyer", 2),
]

# Unique single-letter representations for each ship on the board.
SHIP_LETTERS = {
    "Carrier": "A",  # "A" for Aircraft carrier to avoid clash with Cruiser's "C"
    "Battleship": "B",
    "Cruiser": "C",
    "Submarine": "S",
    "Destroyer": "D",
}

# SALVO_FIRST_TURN: which joiner fires first once both fleets are placed.
#   "first" (default) or "second".
FIRST_TURN: FirstTurn = "second" if os.getenv("SALVO_FIRST_TURN", "first") == "second" else "first"


# ===========================================================================
# Debugging and Logging
# ===========================================================================
# SALVO_DEBUG: If "1", enables detailed debug logging across modules.
#   Defaults to "0" (disabled).
DEBUG: bool = os.getenv("SALVO_DEBUG", "0") == "1"


@dataclass(frozen=True)
class Ruleset:
    """Per-registry game rules: board size, fleet roster and opening rule."""

    board_size: int = BOARD_SIZE
    fleet: tuple[str, ...] = tuple(name for name, _ in SHIPS)
    first_turn: FirstTurn = FIRST_TURN

    def __post_init__(self) -> None:
        if self.board_size < 1:
            raise ValueError("board_size must be positive")
        if not self.fleet:
            raise ValueError("fleet must contain at least one ship")
        if self.first_turn not in ("first", "second"):
            raise ValueError(f"Unknown first_turn rule: {self.first_turn!r}")
