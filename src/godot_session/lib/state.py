"""Mutable state shared by one controller's session components.

A ``SessionState`` is created once and handed explicitly to the transport,
the process supervisor, and the session manager. Nothing here is a module
global, so two independent controllers are just two ``SessionState``
instances.

Ownership:
- ``connection`` / ``framer`` / ``pending``: mutated by lib.transport only
- ``process`` / ``last_process``: mutated by lib.supervisor only
- ``snapshot`` / ``phase``: mutated by the session manager only
"""

import asyncio
from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, ConfigDict

from godot_session.lib.framing import LineFramer

if TYPE_CHECKING:
    from godot_session.lib.supervisor import RuntimeProcess
    from godot_session.lib.transport import ReceiverProtocol


SessionPhase = Literal["idle", "preparing", "running", "tearing_down"]


class ProjectSnapshot(BaseModel):
    """Pre-mutation copy of a project descriptor, restored on teardown."""

    model_config = ConfigDict(frozen=True)

    project_path: Path
    descriptor_path: Path
    script_path: Path
    original: bytes


class SessionState:
    """Everything one controller knows about its live session."""

    def __init__(self) -> None:
        self.connection: ReceiverProtocol | None = None
        self.framer = LineFramer()
        self.pending: asyncio.Future[Any] | None = None
        self.send_lock = asyncio.Lock()

        self.process: RuntimeProcess | None = None
        self.last_process: RuntimeProcess | None = None

        self.snapshot: ProjectSnapshot | None = None
        self.phase: SessionPhase = "idle"

    def settle_pending(
        self,
        result: Any = None,
        *,
        error: BaseException | None = None,
    ) -> bool:
        """Resolve or reject the pending request and clear the slot.

        Returns:
            True if a pending request was settled, False if there was none
            (or it had already been settled by another trigger).
        """
        future = self.pending
        self.pending = None
        if future is None or future.done():
            return False
        if error is not None:
            future.set_exception(error)
        else:
            future.set_result(result)
        return True
