"""MCP plumbing for the session tools.

``create_mcp_server`` builds an in-process MCP server for the Claude
Agent SDK. Unlike the SDK's own ``create_sdk_mcp_server`` it keeps the
``is_error`` flag of tool responses, so a failed ``send_command`` reaches
the model as an error instead of as a successful text block. The
returned config's ``instance`` is a plain ``mcp.server.Server`` and can
also be served over stdio (see ``godot-session serve``).

``session_tool`` turns an async handler taking and returning pydantic
models into a tool: input is validated, output is serialized, metrics
are recorded, and ``ToolError`` / ``SessionError`` become error
responses.

Tool naming convention:
    After registration, tools are named: mcp__{server_name}__{tool_name}
    Example: mcp__godot-session__send_command

Examples:
    Define a tool and serve it::

        >>> class PingOutput(BaseModel):
        ...     reply: dict[str, object]
        >>> @session_tool("Ping the running game.")
        ... async def ping(params: EmptyInput) -> PingOutput:
        ...     return PingOutput(reply=await manager.send({"type": "ping"}))
        >>> server = create_mcp_server("godot-session", tools=extract_sdk_tools([ping]))
"""

import inspect
import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from typing import Any, TypedDict, cast, get_type_hints

from claude_agent_sdk import SdkMcpTool
from claude_agent_sdk.types import McpSdkServerConfig
from mcp.server import Server
from mcp.types import CallToolResult, ContentBlock, TextContent, Tool
from pydantic import BaseModel, ValidationError

from godot_session.lib.errors import SessionError
from godot_session.lib.metrics import collector
from godot_session.lib.responses import mcp_error, mcp_session_error, mcp_success

logger = logging.getLogger(__name__)


class ToolResponse(TypedDict, total=False):
    """Shape of the dict returned by tool handlers."""

    content: list[dict[str, str]]
    is_error: bool


class CallToolResultWithAlias(CallToolResult):
    """``CallToolResult`` that also answers to ``is_error``.

    The SDK reads ``is_error`` while MCP names the field ``isError``.
    """

    @property
    def is_error(self) -> bool:
        return self.isError


def create_mcp_server(
    name: str,
    version: str = "1.0.0",
    tools: Sequence[SdkMcpTool[Any]] | None = None,
) -> McpSdkServerConfig:
    """Create an MCP server exposing ``tools`` with ``is_error`` preserved.

    Args:
        name: Server name (the ``{server_name}`` in tool names).
        version: Server version string.
        tools: SDK tools, usually from ``extract_sdk_tools``.
    """
    server = Server(name, version=version)
    tool_map = {tool_def.name: tool_def for tool_def in tools or []}

    @server.list_tools()  # type: ignore[no-untyped-call,untyped-decorator]
    async def list_tools() -> list[Tool]:
        return [
            Tool(
                name=tool_def.name,
                description=tool_def.description,
                inputSchema=cast(dict[str, Any], tool_def.input_schema),
            )
            for tool_def in tool_map.values()
        ]

    @server.call_tool()  # type: ignore[untyped-decorator]
    async def call_tool(name: str, arguments: dict[str, object]) -> CallToolResult:
        if name not in tool_map:
            raise ValueError(f"Tool '{name}' not found")

        result = cast(ToolResponse, await tool_map[name].handler(arguments))
        content = [
            TextContent(type="text", text=item["text"])
            for item in result.get("content", [])
            if item.get("type") == "text"
        ]
        return CallToolResultWithAlias(
            content=cast(list[ContentBlock], content),
            isError=result.get("is_error", False),
        )

    return McpSdkServerConfig(type="sdk", name=name, instance=server)


class ToolError(Exception):
    """Raise in a tool handler to return an MCP error response."""


class SessionMcpTool:
    """An ``SdkMcpTool`` plus the pydantic models it was built from."""

    def __init__(
        self,
        sdk_tool: SdkMcpTool[Any],
        input_model: type[BaseModel],
        output_model: type[BaseModel] | None = None,
    ) -> None:
        self.sdk_tool = sdk_tool
        self.input_model = input_model
        self.output_model = output_model

    @property
    def name(self) -> str:
        return self.sdk_tool.name

    async def __call__(self, args: dict[str, Any]) -> dict[str, Any]:
        """Invoke the tool directly with raw arguments."""
        return cast(dict[str, Any], await self.sdk_tool.handler(args))


def session_tool(
    description: str,
    *,
    name: str | None = None,
) -> Callable[[Callable[..., Awaitable[BaseModel]]], SessionMcpTool]:
    """Decorator for MCP tools with typed input/output models.

    The input model is taken from the handler's first parameter annotation
    and the output model from its return annotation. The handler receives a
    validated model instance and must return a ``BaseModel``.

    Args:
        description: What the tool does and when to use it.
        name: Tool name; defaults to the handler's function name.
    """

    def decorator(handler: Callable[..., Awaitable[BaseModel]]) -> SessionMcpTool:
        tool_name = name or handler.__name__
        hints = get_type_hints(handler)
        params = list(inspect.signature(handler).parameters.values())
        input_model = hints.get(params[0].name) if params else None
        if not (isinstance(input_model, type) and issubclass(input_model, BaseModel)):
            raise TypeError(f"session_tool '{tool_name}': cannot infer input model")
        output_model = hints.get("return")
        if not (isinstance(output_model, type) and issubclass(output_model, BaseModel)):
            output_model = None

        async def wrapper(args: dict[str, Any]) -> dict[str, Any]:
            start = time.perf_counter()
            is_error = True
            try:
                try:
                    validated = input_model.model_validate(args)
                except ValidationError as e:
                    return mcp_error(f"Invalid input: {e}")
                try:
                    result = await handler(validated)
                except SessionError as e:
                    logger.info("%s failed: %s", tool_name, e)
                    return mcp_session_error(e)
                except ToolError as e:
                    return mcp_error(str(e))
                if output_model is not None and not isinstance(result, output_model):
                    raise TypeError(
                        f"session_tool '{tool_name}': expected {output_model.__name__}, "
                        f"got {type(result).__name__}"
                    )
                is_error = False
                return mcp_success(result.model_dump(mode="json"))
            finally:
                collector.record(tool_name, (time.perf_counter() - start) * 1000, is_error)

        sdk = SdkMcpTool(
            name=tool_name,
            description=description,
            input_schema=input_model.model_json_schema(),
            handler=cast(Callable[[Any], Awaitable[dict[str, Any]]], wrapper),
        )
        return SessionMcpTool(sdk, input_model, output_model)

    return decorator


def extract_sdk_tools(tools: list[SessionMcpTool]) -> list[SdkMcpTool[Any]]:
    """The ``SdkMcpTool`` instances ``create_mcp_server`` expects."""
    return [t.sdk_tool for t in tools]
