"""Error taxonomy for interactive sessions.

Every error raised by the session subsystem derives from ``SessionError``
and carries a ``kind`` so callers can decide whether to retry without
parsing messages:

- ``connection``: the receiver socket cannot be reached or was lost
- ``protocol``: the runtime answered with something that is not JSON
- ``timeout``: no reply arrived within the command window
- ``process``: the runtime could not be launched, located, or stopped
- ``state``: the project could not be prepared for a session

Examples:
    Branch on the error kind::

        >>> try:
        ...     await manager.send({"type": "get_state"})
        ... except SessionError as e:
        ...     if e.kind == "connection":
        ...         await manager.start(project_path)
"""

from typing import ClassVar, Literal

ErrorKind = Literal["connection", "protocol", "timeout", "process", "state"]


class SessionError(RuntimeError):
    """Base class for all interactive session errors."""

    kind: ClassVar[ErrorKind]


class ReceiverConnectionError(SessionError):
    """Raised when the receiver socket cannot be established or is lost."""

    kind = "connection"


class SessionEndedError(ReceiverConnectionError):
    """Raised for a pending request when its session is torn down."""


class ProtocolError(SessionError):
    """Raised when a reply line is not valid JSON."""

    kind = "protocol"


class CommandTimeoutError(SessionError):
    """Raised when a command gets no reply within the timeout."""

    kind = "timeout"


class ProcessError(SessionError):
    """Raised when the runtime process fails to launch or dies during startup."""

    kind = "process"


class NoActiveProcessError(ProcessError):
    """Raised when stop or output is requested with nothing supervised."""


class RuntimeNotFoundError(ProcessError):
    """Raised when no valid Godot executable can be located."""


class ProjectStateError(SessionError):
    """Raised when the project is invalid or its descriptor cannot be mutated."""

    kind = "state"
