"""Lightweight event model used by GameSession to decouple game logic from transport.

GameSession emits strongly-typed internal events; the router translates them
into per-player OutboundEvent objects and posts them to that player's Mailbox,
which the transport drains to push messages to the live connection.
"""

from __future__ import annotations

import json
import queue
import threading
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Dict, Iterator, List, Optional


class Category(Enum):
    """High-level event categories."""

    TURN = auto()  # per-turn lifecycle (prompt, shot)
    SETUP = auto()  # fleet placement
    SYSTEM = auto()  # join / phase change / forfeit / timeout / end


@dataclass(slots=True)
class Event:
    """Internal event emitted by GameSession."""

    category: Category
    type: str  # finer-grained identifier, e.g. "shot", "phase", "end"
    payload: Dict[str, Any]


@dataclass(frozen=True)
class OutboundEvent:
    """One message for one player, already filtered for what they may see."""

    recipient: str
    session_id: str
    type: str
    payload: Dict[str, Any] = field(default_factory=dict)

    def to_json(self) -> str:
        return json.dumps({"type": self.type, "session": self.session_id, **self.payload})


_CLOSED = object()


class Mailbox:
    """Per-player FIFO of outbound events. Closed when the session is released."""

    def __init__(self, owner: str) -> None:
        self.owner = owner
        self._queue: "queue.Queue[Any]" = queue.Queue()
        self._closed = threading.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def put(self, ev: OutboundEvent) -> bool:
        """Queue *ev*; returns False once the mailbox has been closed."""
        if self._closed.is_set():
            return False
        self._queue.put(ev)
        return True

    def close(self) -> None:
        if not self._closed.is_set():
            self._closed.set()
            self._queue.put(_CLOSED)

    def stream(self) -> Iterator[OutboundEvent]:
        """Yield events as they arrive, blocking in between, until the mailbox closes."""
        while True:
            item = self._queue.get()
            if item is _CLOSED:
                # leave the marker for any other reader of this mailbox
                self._queue.put(_CLOSED)
                return
            yield item

    def get(self, timeout: Optional[float] = None) -> Optional[OutboundEvent]:
        """Return the next event, or None on timeout or once closed."""
        try:
            item = self._queue.get(timeout=timeout)
        except queue.Empty:
            return None
        if item is _CLOSED:
            self._queue.put(_CLOSED)
            return None
        return item

    def drain(self) -> List[OutboundEvent]:
        """Return every event queued right now without blocking."""
        items: List[OutboundEvent] = []
        while True:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                return items
            if item is _CLOSED:
                self._queue.put(_CLOSED)
                return items
            items.append(item)
