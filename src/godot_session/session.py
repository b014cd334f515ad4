"""Interactive session lifecycle.

A session temporarily turns a Godot project into something the controller
can talk to: it drops the input receiver script into the project,
registers it as an autoload in ``project.godot``, launches the game, and
then relays commands over TCP. Every way a session can end (explicit stop,
the game exiting or crashing, a new session replacing it) goes through
the same idempotent ``teardown``, which restores ``project.godot``
byte-for-byte and deletes the receiver script.

Phases: idle → preparing → running → tearing_down → idle.

Examples:
    Drive a game for a few commands::

        >>> async with SessionManager(settings=settings) as manager:
        ...     await manager.start("/path/to/game")
        ...     state = await manager.send({"type": "get_state"})
        ...     await manager.send({"type": "input", "action": "jump"})
        ...     final = await manager.stop()
"""

import asyncio
import logging
from pathlib import Path
from typing import Any, Protocol, Self

from pydantic import BaseModel, Field

from godot_session.config import Settings
from godot_session.config import settings as default_settings
from godot_session.lib.descriptor import (
    PROJECT_FILE,
    RECEIVER_AUTOLOAD,
    RECEIVER_SCRIPT_NAME,
    has_autoload,
    prepare_descriptor,
    remove_autoload,
)
from godot_session.lib.errors import (
    NoActiveProcessError,
    ProcessError,
    ProjectStateError,
)
from godot_session.lib.locator import GodotLocator
from godot_session.lib.receiver import render_receiver_script
from godot_session.lib.state import ProjectSnapshot, SessionPhase, SessionState
from godot_session.lib.supervisor import ProcessOutput, ProcessSupervisor, RuntimeProcess
from godot_session.lib.transport import disconnect, send_command

logger = logging.getLogger(__name__)


class ExecutableResolver(Protocol):
    """Anything that can find the Godot executable."""

    async def resolve(self) -> str: ...


class SessionInfo(BaseModel):
    """Details of a freshly started session."""

    project_path: str = Field(description="Project directory")
    scene: str | None = Field(default=None, description="Scene override, if any")
    executable: str = Field(description="Godot executable used")
    pid: int = Field(description="Process id of the running game")
    receiver: str = Field(description="host:port of the input receiver")


class SessionManager:
    """Owns one controller's session: project mutation, process, transport.

    Args:
        state: Shared session state (a fresh one is created if omitted).
        settings: Timeouts, receiver address, and runtime options.
        locator: Resolves the Godot executable.
        supervisor: Process supervisor (built from ``settings`` if omitted).
    """

    def __init__(
        self,
        state: SessionState | None = None,
        *,
        settings: Settings | None = None,
        locator: ExecutableResolver | None = None,
        supervisor: ProcessSupervisor | None = None,
    ) -> None:
        self.state = state or SessionState()
        self.settings = settings or default_settings
        self.locator = locator or GodotLocator(self.settings.godot_path)
        self.supervisor = supervisor or ProcessSupervisor(
            self.state,
            log_capacity=self.settings.log_capacity,
            stop_timeout=self.settings.stop_timeout_seconds,
        )
        self.supervisor.on_exit = self.on_runtime_exit

    @property
    def phase(self) -> SessionPhase:
        return self.state.phase

    @property
    def is_running(self) -> bool:
        return self.state.phase == "running"

    # ------------------------------------------------------------------
    # Start
    # ------------------------------------------------------------------

    async def start(self, project_path: str | Path, scene: str | None = None) -> SessionInfo:
        """Start an interactive session, replacing any session already running.

        Raises:
            ProjectStateError: If the project is invalid or cannot be prepared.
            RuntimeNotFoundError: If Godot cannot be located (nothing is modified).
            ProcessError: If Godot fails to launch or exits during startup.
        """
        if self.state.process is not None or self.state.snapshot is not None:
            logger.info("Replacing the running session")
            await self.shutdown("Session replaced by a new session")

        project = Path(project_path).expanduser().resolve()
        descriptor = project / PROJECT_FILE
        if not descriptor.is_file():
            raise ProjectStateError(f"Not a valid Godot project: {project_path}")

        executable = await self.locator.resolve()

        self.state.phase = "preparing"
        try:
            self.prepare(project)
        except (OSError, UnicodeDecodeError) as e:
            self.teardown("Session preparation failed")
            raise ProjectStateError(f"Failed to prepare project {project}: {e}") from e

        args = ["-d", "--path", str(project)]
        if scene:
            args.append(scene)
        try:
            handle = await self.supervisor.launch(executable, args)
        except ProcessError:
            self.teardown("Godot failed to launch")
            raise
        self.state.phase = "running"

        await asyncio.sleep(self.settings.launch_grace_seconds)
        if self.state.process is not handle:
            details = "\n".join(handle.stderr.tail(20))
            raise ProcessError(
                f"Godot exited during startup with code {handle.returncode}"
                + (f":\n{details}" if details else "")
            )

        logger.info("Interactive session running for %s (pid %d)", project, handle.pid)
        return SessionInfo(
            project_path=str(project),
            scene=scene,
            executable=executable,
            pid=handle.pid,
            receiver=f"{self.settings.receiver_host}:{self.settings.receiver_port}",
        )

    def prepare(self, project: Path) -> None:
        """Install the receiver script and autoload, snapshotting the original.

        A receiver entry left behind by a controller that died mid-session is
        removed first, and the snapshot holds that cleaned text. Restoring
        such a project therefore drops the stale line instead of reproducing
        the file byte-for-byte.

        Raises:
            OSError: If the project files cannot be read or written.
            UnicodeDecodeError: If ``project.godot`` is not UTF-8.
        """
        descriptor = project / PROJECT_FILE
        script = project / RECEIVER_SCRIPT_NAME

        original = descriptor.read_bytes()
        text = original.decode("utf-8")
        if has_autoload(text, RECEIVER_AUTOLOAD):
            logger.warning("Removing stale receiver autoload from %s", descriptor)
            text = remove_autoload(text, RECEIVER_AUTOLOAD)
            cleaned = text.encode("utf-8")
            logger.debug(
                "Snapshot of %s drops %d stale bytes", descriptor, len(original) - len(cleaned)
            )
            original = cleaned

        self.state.snapshot = ProjectSnapshot(
            project_path=project,
            descriptor_path=descriptor,
            script_path=script,
            original=original,
        )
        script.write_text(
            render_receiver_script(self.settings.receiver_port), encoding="utf-8"
        )
        modified = prepare_descriptor(text, windowed=self.settings.force_windowed)
        descriptor.write_bytes(modified.encode("utf-8"))
        logger.debug("Injected receiver autoload into %s", descriptor)

    # ------------------------------------------------------------------
    # Commands and output
    # ------------------------------------------------------------------

    async def send(self, command: dict[str, Any]) -> Any:
        """Send one command to the running game and return its reply."""
        return await send_command(
            self.state,
            command,
            host=self.settings.receiver_host,
            port=self.settings.receiver_port,
            timeout=self.settings.command_timeout_seconds,
            connect_timeout=self.settings.connect_timeout_seconds,
            on_lost=self.on_connection_lost,
        )

    def output(self, *, errors_only: bool = False, tail: int = 0) -> ProcessOutput:
        """Captured Godot output for the current (or last) process."""
        return self.supervisor.output(errors_only=errors_only, tail=tail)

    # ------------------------------------------------------------------
    # Stop and teardown
    # ------------------------------------------------------------------

    async def stop(self) -> ProcessOutput:
        """Stop the game and restore the project.

        Raises:
            NoActiveProcessError: If there is no session to stop.
        """
        had_session = self.state.snapshot is not None or self.state.phase != "idle"
        disconnect(self.state, "Session stopped")
        try:
            output = await self.supervisor.stop()
        except NoActiveProcessError:
            self.teardown("Session stopped")
            if not had_session:
                raise
            return self.supervisor.output()
        self.teardown("Session stopped")
        return output

    async def shutdown(self, reason: str = "Session ended") -> None:
        """Stop whatever is running, never raising for an idle manager."""
        disconnect(self.state, reason)
        if self.state.process is not None:
            await self.supervisor.stop()
        self.teardown(reason)

    def teardown(self, reason: str = "Session ended") -> None:
        """Disconnect, restore ``project.godot``, and delete the receiver script.

        Idempotent: a second call finds nothing to undo. File errors are
        logged and never keep the in-memory state from being cleared.
        """
        snapshot = self.state.snapshot
        if snapshot is None and self.state.connection is None and self.state.phase == "idle":
            return

        self.state.phase = "tearing_down"
        logger.info("Tearing down session: %s", reason)
        disconnect(self.state, reason)

        self.state.snapshot = None
        if snapshot is not None:
            try:
                snapshot.descriptor_path.write_bytes(snapshot.original)
            except OSError:
                logger.exception("Failed to restore %s", snapshot.descriptor_path)
            try:
                snapshot.script_path.unlink(missing_ok=True)
            except OSError:
                logger.exception("Failed to remove %s", snapshot.script_path)

        self.state.phase = "idle"

    def on_runtime_exit(self, handle: RuntimeProcess) -> None:
        logger.warning("Godot exited on its own (code %s)", handle.returncode)
        self.teardown("Godot process exited")

    def on_connection_lost(self, exc: BaseException | None) -> None:
        # The game may just have dropped the socket; only tear down once it is gone.
        if self.state.phase == "running" and self.state.process is None:
            self.teardown("Receiver connection lost")

    # ------------------------------------------------------------------
    # Context manager
    # ------------------------------------------------------------------

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        await self.shutdown("Controller exiting")
