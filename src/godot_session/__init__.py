"""Interactive Godot sessions.

Temporarily wires an input receiver into a Godot project, launches the
game, and drives it over a newline-delimited JSON channel on a loopback
TCP port. Ending the session in any way restores the project exactly.

Structure:
- godot_session/lib/: Reusable building blocks (no global state)
  - framing.py: Newline-delimited JSON framing
  - transport.py: Receiver connection and request correlation
  - supervisor.py: Godot process launch, output capture, stop
  - descriptor.py: project.godot autoload injection
  - receiver.py: GDScript receiver injected into the project
  - locator.py: Godot executable discovery
  - mcp.py, responses.py, metrics.py: MCP tool plumbing
  - retry.py: Caller-side retry
- godot_session/session.py: Session lifecycle (start, send, stop, teardown)
- godot_session/tools.py: MCP tools over a SessionManager
- godot_session/config.py: Configuration via pydantic-settings
- godot_session/cli/: Typer CLI (serve, run, shell)
"""
