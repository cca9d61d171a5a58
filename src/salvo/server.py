"""Line-oriented TCP front-end for the session engine.

Each client line is parsed into a command (see :mod:`salvo.commands`) and
executed against one shared SessionRegistry. Replies and pushed events are
single text lines:

OK <json>              Command accepted; payload depends on the command.
ERR <code> <text>      Command rejected; nothing changed on the server.
EVENT <json>           Outbound game event for this player.
HELLO <player-id>      First line on every connection.

The server holds no game state of its own: a connection only maps a socket
to a player id and drains that player's event stream while they are seated.
"""

from __future__ import annotations

import argparse
import contextlib
import itertools
import json
import logging
import os
import signal
import socket
import sys
import threading
from typing import Optional, TextIO

from . import config as _cfg
from .commands import CommandParseError, execute, parse_command
from .errors import GameError
from .registry import SessionRegistry
from .session import GameSession

HOST = _cfg.DEFAULT_HOST
PORT = _cfg.DEFAULT_PORT

# Player ids handed to fresh connections
_pid_counter = itertools.count(100000)

logger = logging.getLogger(__name__)


class PlayerConnection:
    """One client socket bound to one player id."""

    def __init__(self, registry: SessionRegistry, sock: socket.socket, player: str):
        self.registry = registry
        self.sock = sock
        self.player = player
        self.rfile: TextIO = sock.makefile("r")
        self.wfile: TextIO = sock.makefile("w")
        self._wlock = threading.Lock()

    def send_line(self, text: str) -> bool:
        """Write one line; returns False if the peer is gone."""
        with self._wlock:
            try:
                self.wfile.write(text + "\n")
                self.wfile.flush()
                return True
            except (OSError, ValueError):
                return False

    def attach(self, session: GameSession) -> None:
        """Start pushing *session*'s events for this player."""
        threading.Thread(
            target=self._pump_events,
            args=(session,),
            name=f"pump-{self.player}-{session.id}",
            daemon=True,
        ).start()

    def _pump_events(self, session: GameSession) -> None:
        for ev in session.subscribe(self.player):
            if not self.send_line("EVENT " + ev.to_json()):
                logger.debug("Dropping events for %s – connection closed", self.player)
                return

    def handle_line(self, line: str) -> str:
        try:
            cmd = parse_command(line)
        except CommandParseError as e:
            return f"ERR bad_command {e}"
        try:
            payload = execute(self.registry, self.player, cmd)
        except GameError as e:
            return f"ERR {e.code} {e}"
        return "OK " + json.dumps(payload)

    def serve(self) -> None:
        """Read commands until the client hangs up, then forfeit or leave the queue."""
        self.send_line(f"HELLO {self.player}")
        try:
            for line in self.rfile:
                if not line.strip():
                    continue
                if not self.send_line(self.handle_line(line)):
                    break
        except OSError as e:
            logger.info(f"Connection for {self.player} failed: {e}")
        finally:
            self.registry.disconnect(self.player)
            with contextlib.suppress(OSError):
                self.sock.shutdown(socket.SHUT_RDWR)
            self.sock.close()
            logger.info(f"{self.player} disconnected")


class LineServer:
    """Accept loop that gives every connection its own thread."""

    def __init__(self, host: str = HOST, port: int = PORT, registry: SessionRegistry | None = None):
        self.host = host
        self.port = port
        self.registry = registry or SessionRegistry()
        self.registry.on_paired = self._on_paired
        self._connections: dict[str, PlayerConnection] = {}
        self._lock = threading.Lock()
        self._sock: Optional[socket.socket] = None

    def _on_paired(self, session: GameSession) -> None:
        with self._lock:
            conns = [self._connections.get(p) for p in session.players]
        for conn in conns:
            if conn is not None:
                conn.attach(session)

    def bind(self) -> int:
        """Bind and listen; returns the actual port (useful with port 0)."""
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((self.host, self.port))
        sock.listen()
        self._sock = sock
        self.port = sock.getsockname()[1]
        return self.port

    def _serve_connection(self, conn: PlayerConnection) -> None:
        try:
            conn.serve()
        finally:
            with self._lock:
                self._connections.pop(conn.player, None)

    def serve_forever(self) -> None:
        if self._sock is None:
            self.bind()
        self.registry.start()
        logging.info(f"SALVO server listening on {self.host}:{self.port}")
        try:
            while True:
                try:
                    client, addr = self._sock.accept()
                except OSError:
                    # listening socket closed by shutdown()
                    break
                player = f"PID{next(_pid_counter)}"
                logger.info(f"Connection from {addr} as {player}")
                conn = PlayerConnection(self.registry, client, player)
                with self._lock:
                    self._connections[player] = conn
                threading.Thread(target=self._serve_connection, args=(conn,), daemon=True).start()
        finally:
            self.registry.stop()

    def shutdown(self) -> None:
        if self._sock is not None:
            with contextlib.suppress(OSError):
                self._sock.shutdown(socket.SHUT_RDWR)
            self._sock.close()


def main() -> None:  # pragma: no cover – side-effect entrypoint
    """Run the SALVO line server until interrupted."""
    parser = argparse.ArgumentParser(description="SALVO battleship session server")
    parser.add_argument("--host", default=HOST, help="Address to bind to.")
    parser.add_argument("--port", type=int, default=PORT, help="Port to listen on.")
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase verbosity.",
    )
    parser.add_argument(
        "-s",
        "--silent",
        "-q",
        "--quiet",
        dest="silent",
        action="store_true",
        help="Suppress all output.",
    )
    args = parser.parse_args()

    if args.debug:
        os.environ["SALVO_DEBUG"] = "1"

    # Determine log level from CLI flags:
    if args.silent:
        level = logging.ERROR
    elif args.debug or _cfg.DEBUG:
        level = logging.DEBUG
    elif args.verbose >= 1:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    server = LineServer(args.host, args.port)

    def _shutdown(signum, frame):
        sys.stderr.write("\n")
        logger.info("Received signal %s, shutting down", signum)
        server.shutdown()

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)
    server.serve_forever()


if __name__ == "__main__":  # pragma: no cover
    main()
