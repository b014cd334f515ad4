"""Supervision of the Godot runtime process.

Spawns the runtime with piped output, tails stdout and stderr into bounded
line logs, and reports when the process goes away on its own. At most one
process is supervised per ``SessionState``; launching a new one stops the
previous one first.

Examples:
    Launch, inspect output, stop::

        >>> supervisor = ProcessSupervisor(SessionState())
        >>> await supervisor.launch("/usr/bin/godot", ["-d", "--path", "game"])
        >>> supervisor.output(errors_only=True, tail=20).output
        ['SCRIPT ERROR: ...']
        >>> final = await supervisor.stop()
"""

import asyncio
import logging
import re
from collections import deque
from collections.abc import Callable, Sequence

from pydantic import BaseModel, Field

from godot_session.lib.errors import NoActiveProcessError, ProcessError
from godot_session.lib.state import SessionState

logger = logging.getLogger(__name__)

DEFAULT_LOG_CAPACITY = 10_000
DEFAULT_STOP_TIMEOUT = 3.0
STREAM_LIMIT = 1024 * 1024

ERROR_LINE = re.compile(r"ERROR|SCRIPT|WARNING|error:|Invalid", re.IGNORECASE)
STACK_LINE = re.compile(r"^\s+at:")

ExitCallback = Callable[["RuntimeProcess"], None]
"""Called when the active process exits without being stopped."""


class ProcessOutput(BaseModel):
    """Captured runtime output."""

    output: list[str] = Field(description="stdout lines")
    errors: list[str] = Field(description="stderr lines")
    returncode: int | None = Field(default=None, description="Exit code, if exited")


class LineLog:
    """Bounded, append-only log of output lines."""

    def __init__(self, capacity: int = DEFAULT_LOG_CAPACITY) -> None:
        self.entries: deque[str] = deque(maxlen=capacity)

    def append(self, line: str) -> None:
        self.entries.append(line)

    def lines(self) -> list[str]:
        return list(self.entries)

    def tail(self, count: int) -> list[str]:
        if count <= 0:
            return self.lines()
        return list(self.entries)[-count:]

    def __len__(self) -> int:
        return len(self.entries)


class RuntimeProcess:
    """A spawned runtime and its captured output."""

    def __init__(
        self,
        process: asyncio.subprocess.Process,
        executable: str,
        args: Sequence[str],
        log_capacity: int,
    ) -> None:
        self.process = process
        self.executable = executable
        self.args = list(args)
        self.stdout = LineLog(log_capacity)
        self.stderr = LineLog(log_capacity)
        self.watcher: asyncio.Task[None] | None = None

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def returncode(self) -> int | None:
        return self.process.returncode

    @property
    def running(self) -> bool:
        return self.process.returncode is None

    def snapshot(self, *, errors_only: bool = False, tail: int = 0) -> ProcessOutput:
        """Copy the logs, optionally filtered to error lines and/or the last N."""
        output = self.stdout.lines()
        errors = self.stderr.lines()
        if errors_only:
            output = [
                line for line in output if ERROR_LINE.search(line) or STACK_LINE.match(line)
            ]
        if tail > 0:
            output = output[-tail:]
            errors = errors[-tail:]
        return ProcessOutput(output=output, errors=errors, returncode=self.returncode)


async def pump_lines(stream: asyncio.StreamReader | None, log: LineLog, label: str) -> None:
    """Copy lines from a process pipe into ``log`` until EOF."""
    if stream is None:
        return
    while True:
        raw = await stream.readline()
        if not raw:
            return
        line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
        log.append(line)
        if line.strip():
            logger.debug("[Godot %s] %s", label, line)


class ProcessSupervisor:
    """Starts, watches, and stops the runtime process for one session state.

    Args:
        state: Session state holding the active process reference.
        log_capacity: Maximum lines kept per output stream.
        stop_timeout: Seconds to wait after SIGTERM before killing.
        on_exit: Callback for the active process exiting on its own.
    """

    def __init__(
        self,
        state: SessionState,
        *,
        log_capacity: int = DEFAULT_LOG_CAPACITY,
        stop_timeout: float = DEFAULT_STOP_TIMEOUT,
        on_exit: ExitCallback | None = None,
    ) -> None:
        self.state = state
        self.log_capacity = log_capacity
        self.stop_timeout = stop_timeout
        self.on_exit = on_exit

    @property
    def active(self) -> RuntimeProcess | None:
        return self.state.process

    async def launch(self, executable: str, args: Sequence[str]) -> RuntimeProcess:
        """Spawn the runtime, stopping any process already supervised.

        Raises:
            ProcessError: If the executable cannot be spawned.
        """
        if self.state.process is not None:
            logger.info("Stopping existing Godot process before starting a new one")
            await self.stop()

        logger.info("Launching Godot: %s %s", executable, " ".join(args))
        try:
            process = await asyncio.create_subprocess_exec(
                executable,
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=STREAM_LIMIT,
            )
        except OSError as e:
            raise ProcessError(f"Failed to start Godot process: {e}") from e

        handle = RuntimeProcess(process, executable, args, self.log_capacity)
        self.state.process = handle
        self.state.last_process = handle
        handle.watcher = asyncio.create_task(self.watch(handle))
        return handle

    async def watch(self, handle: RuntimeProcess) -> None:
        """Drain output until the process exits, then report the exit."""
        await asyncio.gather(
            pump_lines(handle.process.stdout, handle.stdout, "stdout"),
            pump_lines(handle.process.stderr, handle.stderr, "stderr"),
        )
        code = await handle.process.wait()
        logger.info("Godot process %d exited with code %s", handle.pid, code)
        if self.state.process is not handle:
            return
        self.state.process = None
        if self.on_exit is not None:
            try:
                self.on_exit(handle)
            except Exception:
                logger.exception("Exit callback failed")

    async def stop(self) -> ProcessOutput:
        """Terminate the active process and return everything it printed.

        Raises:
            NoActiveProcessError: If no process is being supervised.
        """
        handle = self.state.process
        if handle is None:
            raise NoActiveProcessError("No active Godot process to stop.")
        self.state.process = None

        logger.info("Stopping Godot process %d", handle.pid)
        if handle.running:
            try:
                handle.process.terminate()
            except ProcessLookupError:
                pass
        await self.wait_for_exit(handle)
        return handle.snapshot()

    async def wait_for_exit(self, handle: RuntimeProcess) -> None:
        """Wait for the process and its output pumps, killing it if it lingers."""
        if handle.watcher is None:
            return
        try:
            await asyncio.wait_for(asyncio.shield(handle.watcher), timeout=self.stop_timeout)
        except TimeoutError:
            logger.warning("Godot did not exit within %.1fs, killing", self.stop_timeout)
            try:
                handle.process.kill()
            except ProcessLookupError:
                pass
            try:
                await asyncio.wait_for(handle.watcher, timeout=self.stop_timeout)
            except TimeoutError:
                logger.error("Godot process %d output pipes never closed", handle.pid)

    def output(self, *, errors_only: bool = False, tail: int = 0) -> ProcessOutput:
        """Read the active (or most recently exited) process output.

        Raises:
            NoActiveProcessError: If no process was ever launched.
        """
        handle = self.state.process or self.state.last_process
        if handle is None:
            raise NoActiveProcessError("No active Godot process.")
        return handle.snapshot(errors_only=errors_only, tail=tail)
