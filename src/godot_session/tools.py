"""MCP tools for interactive Godot sessions.

The four session operations (start, stop, send, read output) plus a few
shortcuts for the commands the injected receiver understands out of the
box. All tools share one ``SessionManager``; build them with
``build_session_tools`` or get a ready server from
``create_session_server``.

Errors from the session layer come back as MCP error responses prefixed
with their kind, e.g. ``[connection] Cannot connect to Godot input
receiver at 127.0.0.1:9876: ...``.
"""

import logging
from pathlib import Path
from typing import Any

from claude_agent_sdk.types import McpSdkServerConfig
from pydantic import BaseModel, Field, field_validator

from godot_session.lib.mcp import (
    SessionMcpTool,
    ToolError,
    create_mcp_server,
    extract_sdk_tools,
    session_tool,
)
from godot_session.lib.supervisor import ProcessOutput
from godot_session.session import SessionInfo, SessionManager
from godot_session.version import __version__

logger = logging.getLogger(__name__)

SERVER_NAME = "godot-session"


# --- Input / output models ---------------------------------------------------


class StartSessionInput(BaseModel):
    project_path: str = Field(description="Path to the Godot project directory (contains project.godot)")
    scene: str | None = Field(
        default=None,
        description="Scene to run instead of the main scene, e.g. res://levels/test.tscn",
    )


class StartSessionOutput(BaseModel):
    message: str
    session: SessionInfo


class EmptyInput(BaseModel):
    pass


class StopSessionOutput(BaseModel):
    message: str
    final_output: list[str] = Field(description="Last lines Godot wrote to stdout")
    final_errors: list[str] = Field(description="Last lines Godot wrote to stderr")
    returncode: int | None = None


class SendCommandInput(BaseModel):
    command: dict[str, Any] = Field(
        description='JSON command for the in-game receiver, e.g. {"type": "get_state"}'
    )

    @field_validator("command")
    @classmethod
    def require_type(cls, command: dict[str, Any]) -> dict[str, Any]:
        kind = command.get("type")
        if not isinstance(kind, str) or not kind:
            raise ValueError('command needs a non-empty string "type" field')
        return command


class CommandReply(BaseModel):
    reply: Any = Field(description="JSON reply from the receiver")


class GetProcessOutputInput(BaseModel):
    errors_only: bool = Field(
        default=False,
        description="Only lines that look like errors, warnings, or stack frames",
    )
    tail: int = Field(default=0, ge=0, description="Keep only the last N lines (0 = all)")


class SendInputInput(BaseModel):
    action: str = Field(min_length=1, description='Input action name, e.g. "jump"')
    pressed: bool = Field(default=True, description="Press (true) or release (false)")


class ScreenshotInput(BaseModel):
    output_path: str | None = Field(
        default=None,
        description="Where to save the PNG (default: <project>/screenshots/capture.png)",
    )


class ScreenshotOutput(BaseModel):
    path: str
    size: str | None = None


FINAL_LINES = 50


# --- Tools -------------------------------------------------------------------


def build_session_tools(manager: SessionManager) -> list[SessionMcpTool]:
    """Create the session tools bound to ``manager``."""

    @session_tool(
        "Start the Godot project in interactive mode. Injects an input receiver "
        "autoload (removed again on stop), launches the game, and waits briefly "
        "for the receiver to come up. Replaces any session already running."
    )
    async def start_session(params: StartSessionInput) -> StartSessionOutput:
        info = await manager.start(params.project_path, params.scene)
        return StartSessionOutput(
            message=(
                "Game started in interactive mode with input receiver. Use send_command "
                "(or send_input, game_state, game_screenshot) to drive it; stop with stop_session."
            ),
            session=info,
        )

    @session_tool(
        "Stop the interactive game, restore project.godot, and return the last output lines."
    )
    async def stop_session(params: EmptyInput) -> StopSessionOutput:
        final = await manager.stop()
        return StopSessionOutput(
            message="Godot project stopped",
            final_output=final.output[-FINAL_LINES:],
            final_errors=final.errors[-FINAL_LINES:],
            returncode=final.returncode,
        )

    @session_tool(
        "Send one JSON command to the running game and return its reply. "
        'The command must have a "type" field; replies arrive in send order.'
    )
    async def send_command(params: SendCommandInput) -> CommandReply:
        return CommandReply(reply=await manager.send(params.command))

    @session_tool(
        "Read what the running (or most recently exited) game wrote to stdout and stderr."
    )
    async def get_process_output(params: GetProcessOutputInput) -> ProcessOutput:
        return manager.output(errors_only=params.errors_only, tail=params.tail)

    @session_tool("Press or release an input action in the running game.")
    async def send_input(params: SendInputInput) -> CommandReply:
        reply = await manager.send(
            {"type": "input", "action": params.action, "pressed": params.pressed}
        )
        return CommandReply(reply=reply)

    @session_tool("Get the running game's state: current scene, pause state, FPS, autoloads.")
    async def game_state(params: EmptyInput) -> CommandReply:
        return CommandReply(reply=await manager.send({"type": "get_state"}))

    @session_tool("Capture a screenshot from the running game's viewport.")
    async def game_screenshot(params: ScreenshotInput) -> ScreenshotOutput:
        output_path = params.output_path
        if output_path is None:
            snapshot = manager.state.snapshot
            base = snapshot.project_path if snapshot is not None else Path.cwd()
            output_path = str(base / "screenshots" / "capture.png")
        reply = await manager.send({"type": "screenshot", "output_path": output_path})
        if not isinstance(reply, dict) or not reply.get("ok"):
            error = reply.get("error") if isinstance(reply, dict) else reply
            raise ToolError(f"Screenshot failed: {error}")
        return ScreenshotOutput(path=output_path, size=reply.get("size"))

    return [
        start_session,
        stop_session,
        send_command,
        get_process_output,
        send_input,
        game_state,
        game_screenshot,
    ]


def create_session_server(manager: SessionManager) -> McpSdkServerConfig:
    """In-process MCP server exposing the session tools."""
    tools = build_session_tools(manager)
    logger.debug("Registering %d session tools", len(tools))
    return create_mcp_server(SERVER_NAME, version=__version__, tools=extract_sdk_tools(tools))
