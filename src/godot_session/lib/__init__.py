"""Building blocks for interactive sessions.

Everything here is parametric: state is passed in explicitly
(``SessionState``) and settings arrive as arguments, so the modules can
be combined and tested without the ``godot_session.config`` singleton.

Modules:
- descriptor: project.godot autoload injection and windowed-mode rewrite
- errors: Error taxonomy (connection, protocol, timeout, process, state)
- framing: Line framer and JSON line codec
- locator: Godot executable discovery and validation
- mcp: MCP server creation and the session_tool decorator
- metrics: Tool call tracking
- receiver: GDScript input receiver source
- responses: MCP response formatting
- retry: Retry decorator for receiver commands
- state: Per-controller session state
- supervisor: Runtime process supervision
- transport: Receiver connection and single-pending-request correlation
"""

from godot_session.lib.descriptor import (
    PROJECT_FILE,
    RECEIVER_AUTOLOAD,
    RECEIVER_SCRIPT_NAME,
    force_windowed_mode,
    inject_autoload,
    prepare_descriptor,
    remove_autoload,
)
from godot_session.lib.errors import (
    CommandTimeoutError,
    NoActiveProcessError,
    ProcessError,
    ProjectStateError,
    ProtocolError,
    ReceiverConnectionError,
    RuntimeNotFoundError,
    SessionEndedError,
    SessionError,
)
from godot_session.lib.framing import LineFramer, decode_line, encode_message
from godot_session.lib.locator import GodotLocator
from godot_session.lib.mcp import (
    SessionMcpTool,
    ToolError,
    create_mcp_server,
    extract_sdk_tools,
    session_tool,
)
from godot_session.lib.metrics import MetricsCollector, ToolMetrics, collector
from godot_session.lib.receiver import render_receiver_script
from godot_session.lib.responses import mcp_error, mcp_response, mcp_success
from godot_session.lib.retry import with_retry
from godot_session.lib.state import ProjectSnapshot, SessionState
from godot_session.lib.supervisor import ProcessOutput, ProcessSupervisor, RuntimeProcess
from godot_session.lib.transport import acquire, disconnect, send_command

__all__ = [
    # Descriptor
    "PROJECT_FILE",
    "RECEIVER_AUTOLOAD",
    "RECEIVER_SCRIPT_NAME",
    "force_windowed_mode",
    "inject_autoload",
    "prepare_descriptor",
    "remove_autoload",
    # Errors
    "CommandTimeoutError",
    "NoActiveProcessError",
    "ProcessError",
    "ProjectStateError",
    "ProtocolError",
    "ReceiverConnectionError",
    "RuntimeNotFoundError",
    "SessionEndedError",
    "SessionError",
    # Framing
    "LineFramer",
    "decode_line",
    "encode_message",
    # Locator
    "GodotLocator",
    # MCP
    "SessionMcpTool",
    "ToolError",
    "create_mcp_server",
    "extract_sdk_tools",
    "session_tool",
    # Metrics
    "MetricsCollector",
    "ToolMetrics",
    "collector",
    # Receiver
    "render_receiver_script",
    # Responses
    "mcp_error",
    "mcp_response",
    "mcp_success",
    # Retry
    "with_retry",
    # State
    "ProjectSnapshot",
    "SessionState",
    # Supervisor
    "ProcessOutput",
    "ProcessSupervisor",
    "RuntimeProcess",
    # Transport
    "acquire",
    "disconnect",
    "send_command",
]
