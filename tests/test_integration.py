"""End-to-end match over the line server with two real TCP clients."""

from __future__ import annotations

import json
import socket
import threading

import pytest

from salvo.registry import SessionRegistry
from salvo.server import LineServer


class LineClient:
    """Minimal blocking client for the line protocol."""

    def __init__(self, port: int) -> None:
        self.sock = socket.create_connection(("127.0.0.1", port))
        self.sock.settimeout(5)
        self.rfile = self.sock.makefile("r")
        self.wfile = self.sock.makefile("w")
        self.player = self.readline().split()[1]

    def readline(self) -> str:
        line = self.rfile.readline()
        assert line, "server closed the connection"
        return line.rstrip("\n")

    def send(self, line: str) -> None:
        self.wfile.write(line + "\n")
        self.wfile.flush()

    def reply(self) -> str:
        """Next OK/ERR line, skipping pushed events."""
        while True:
            line = self.readline()
            if not line.startswith("EVENT "):
                return line

    def event(self, kind: str) -> dict:
        """Next pushed event of the given type, skipping everything else."""
        while True:
            line = self.readline()
            if line.startswith("EVENT "):
                ev = json.loads(line[len("EVENT "):])
                if ev["type"] == kind:
                    return ev

    def close(self) -> None:
        self.rfile.close()
        self.wfile.close()
        self.sock.close()


@pytest.fixture
def line_server():
    server = LineServer("127.0.0.1", 0, SessionRegistry())
    port = server.bind()
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield server, port
    server.shutdown()
    thread.join(timeout=5)


@pytest.mark.timeout(15)
def test_match_over_tcp(line_server) -> None:
    server, port = line_server
    c1 = LineClient(port)
    c2 = LineClient(port)
    try:
        c1.send("JOIN")
        assert json.loads(c1.reply()[3:]) == {"queued": True, "waiting": 1}
        c2.send("JOIN")
        assert c2.reply().startswith("OK ")
        assert c1.event("phase")["opponent"] == c2.player

        c1.send("PLACE RANDOM")
        assert c1.reply().startswith("OK")
        c2.send("PLACE RANDOM")
        assert c2.reply().startswith("OK")
        assert c1.event("turn")["yours"] is True

        # out-of-turn shot is rejected without ending the game
        c2.send("FIRE A1")
        assert c2.reply().startswith("ERR not_your_turn")

        c1.send("FIRE A1")
        shot = json.loads(c1.reply()[3:])
        assert shot["coord"] == "A1"
        seen_by_c2 = c2.event("shot")
        assert seen_by_c2["by"] == "opponent"

        c1.send("FIRE Z99")
        assert c1.reply().startswith("ERR")

        c1.send("QUIT")
        assert c1.reply().startswith("OK")
        end = c2.event("end")
        assert end["result"] == "win"
        assert end["winner"] == c2.player
    finally:
        c1.close()
        c2.close()


@pytest.mark.timeout(15)
def test_disconnect_forfeits_match(line_server) -> None:
    server, port = line_server
    c1 = LineClient(port)
    c2 = LineClient(port)
    try:
        c1.send("JOIN")
        c1.reply()
        c2.send("JOIN")
        c2.reply()
        c1.close()
        end = c2.event("end")
        assert end["reason"] == "disconnect"
        assert end["result"] == "win"
    finally:
        c2.close()


@pytest.mark.timeout(10)
def test_bad_command_reports_error(line_server) -> None:
    server, port = line_server
    c1 = LineClient(port)
    try:
        c1.send("DANCE")
        assert c1.reply().startswith("ERR bad_command")
        c1.send("LEAVE")
        assert c1.reply().startswith("ERR not_waiting")
    finally:
        c1.close()
