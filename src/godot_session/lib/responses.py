"""MCP response formatting.

Tool handlers return plain dicts in the MCP content shape::

    {"content": [{"type": "text", "text": "..."}]}

with ``"is_error": True`` added for failures. Session errors are rendered
as ``[<kind>] <message>`` so callers can tell an unreachable game
(``connection``) from a misbehaving one (``protocol``) without parsing
prose.

Examples:
    >>> mcp_success({"ok": True})
    {'content': [{'type': 'text', 'text': '{"ok": true}'}]}

    >>> mcp_session_error(CommandTimeoutError("TCP command 'ping' timed out after 5s"))
    {'content': [{'type': 'text', 'text': "[timeout] TCP command 'ping' timed out after 5s"}], 'is_error': True}
"""

import json
from typing import Any

from godot_session.lib.errors import SessionError


def mcp_response(text: str, *, is_error: bool = False) -> dict[str, Any]:
    """Wrap ``text`` as a single text content block."""
    response: dict[str, Any] = {"content": [{"type": "text", "text": text}]}
    if is_error:
        response["is_error"] = True
    return response


def mcp_success(result: object) -> dict[str, Any]:
    """JSON-encode ``result`` into a success response."""
    return mcp_response(json.dumps(result, default=str))


def mcp_error(message: str) -> dict[str, Any]:
    return mcp_response(message, is_error=True)


def format_session_error(error: SessionError) -> str:
    return f"[{error.kind}] {error}"


def mcp_session_error(error: SessionError) -> dict[str, Any]:
    """Error response carrying the error kind as a prefix."""
    return mcp_error(format_session_error(error))
