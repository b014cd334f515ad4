"""Shared test fixtures.

Fakes used across the unit tests:
- ``FakeReceiver``: a loopback TCP server speaking the receiver's JSON-line protocol
- ``fake_godot``: an executable script that behaves like ``godot -d --path <project>``
  (reads the injected receiver script for its port and answers commands)
"""

import asyncio
import inspect
import json
import socket
import stat
import sys
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any, Self

import pytest

from godot_session.config import Settings
from godot_session.lib.errors import RuntimeNotFoundError

ORIGINAL_DESCRIPTOR = b'[application]\nconfig/name="X"\n'

Responder = Callable[[dict[str, Any]], bytes | None | Awaitable[bytes | None]]


def echo(command: dict[str, Any]) -> bytes:
    return json.dumps({"ok": True, "type": command.get("type")}).encode() + b"\n"


class FakeReceiver:
    """Loopback server answering each JSON line with ``respond(command)``.

    ``respond`` may return bytes to write, ``None`` to stay silent, or an
    awaitable of either.
    """

    def __init__(self, respond: Responder = echo) -> None:
        self.respond = respond
        self.received: list[dict[str, Any]] = []
        self.connections = 0
        self.writers: list[asyncio.StreamWriter] = []
        self.server: asyncio.Server | None = None

    @property
    def port(self) -> int:
        assert self.server is not None
        return self.server.sockets[0].getsockname()[1]

    async def __aenter__(self) -> Self:
        self.server = await asyncio.start_server(self.handle, "127.0.0.1", 0)
        return self

    async def __aexit__(self, *exc: object) -> None:
        self.drop_clients()
        assert self.server is not None
        self.server.close()
        await self.server.wait_closed()

    def drop_clients(self) -> None:
        for writer in self.writers:
            writer.close()
        self.writers.clear()

    async def handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self.connections += 1
        self.writers.append(writer)
        try:
            while line := await reader.readline():
                command = json.loads(line)
                self.received.append(command)
                response = self.respond(command)
                if inspect.isawaitable(response):
                    response = await response
                if response is not None:
                    writer.write(response)
                    await writer.drain()
        except (ConnectionError, asyncio.IncompleteReadError):
            pass
        finally:
            writer.close()


@pytest.fixture
def fake_receiver() -> type[FakeReceiver]:
    return FakeReceiver


@pytest.fixture
def free_port() -> int:
    """A loopback port that was free a moment ago."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.fixture
def godot_project(tmp_path: Path) -> Path:
    """Minimal Godot project directory."""
    project = tmp_path / "game"
    project.mkdir()
    (project / "project.godot").write_bytes(ORIGINAL_DESCRIPTOR)
    return project


FAKE_GODOT = '''#!{python}
"""Stand-in for the Godot executable."""
import asyncio
import json
import re
import sys
from pathlib import Path

if "--version" in sys.argv:
    print("4.3.stable.fake")
    sys.exit(0)

project = Path(sys.argv[sys.argv.index("--path") + 1])
script = (project / ".mcp_input_receiver.gd").read_text()
port = int(re.search(r"const PORT := (\\d+)", script).group(1))
descriptor = (project / "project.godot").read_text()
print("Godot Engine v4.3.stable.fake", flush=True)
print("autoload registered" if "_McpInputReceiver" in descriptor else "autoload missing", flush=True)
if len(sys.argv) > 4:
    print("scene " + sys.argv[4], flush=True)
print("WARNING: fake renderer in use", flush=True)
print("ERROR: something went wrong", file=sys.stderr, flush=True)
if "exit_early" in descriptor:
    sys.exit(7)


async def handle(reader, writer):
    while line := await reader.readline():
        command = json.loads(line)
        if command["type"] == "crash":
            sys.stdout.flush()
            import os
            os._exit(3)
        if command["type"] == "garbage":
            writer.write(b"not json\\n")
        elif command["type"] != "ignore":
            reply = {{"ok": True, "type": command["type"], "echo": command}}
            writer.write(json.dumps(reply).encode() + b"\\n")
        await writer.drain()
    writer.close()


async def main():
    server = await asyncio.start_server(handle, "127.0.0.1", port)
    async with server:
        await server.serve_forever()


asyncio.run(main())
'''


@pytest.fixture
def fake_godot(tmp_path: Path) -> Path:
    """Executable script behaving like a Godot binary running the receiver."""
    path = tmp_path / "bin" / "godot"
    path.parent.mkdir()
    path.write_text(FAKE_GODOT.format(python=sys.executable))
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


class StubLocator:
    """Resolves to a fixed executable, or fails like a missing Godot."""

    def __init__(self, path: Path | None) -> None:
        self.path = path
        self.calls = 0

    async def resolve(self) -> str:
        self.calls += 1
        if self.path is None:
            raise RuntimeNotFoundError("Could not find a valid Godot executable")
        return str(self.path)


@pytest.fixture
def stub_locator(fake_godot: Path) -> StubLocator:
    return StubLocator(fake_godot)


@pytest.fixture
def missing_locator() -> StubLocator:
    return StubLocator(None)


@pytest.fixture
def session_settings(free_port: int) -> Settings:
    """Fast timeouts against the fake Godot's port."""
    return Settings(
        receiver_port=free_port,
        command_timeout_seconds=2.0,
        connect_timeout_seconds=2.0,
        launch_grace_seconds=1.0,
        stop_timeout_seconds=2.0,
        log_capacity=100,
    )


@pytest.fixture
def locator_factory() -> type[StubLocator]:
    return StubLocator
