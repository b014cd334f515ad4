"""Command line for interactive Godot sessions.

Usage:
    godot-session serve
    godot-session run ./my_game --command '{"type": "get_state"}'
    godot-session run ./my_game --scene res://levels/boss.tscn -c '{"type": "input", "action": "jump"}'
    godot-session shell ./my_game
"""

import asyncio
import json
import logging
from typing import Annotated, Any

import typer
from rich.console import Console
from rich.panel import Panel

from godot_session.config import settings
from godot_session.lib.errors import SessionError
from godot_session.lib.metrics import collector
from godot_session.lib.responses import format_session_error
from godot_session.lib.retry import with_retry
from godot_session.lib.supervisor import ProcessOutput
from godot_session.session import SessionManager
from godot_session.tools import create_session_server

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="godot-session",
    help="Drive a running Godot game over its injected input receiver",
    no_args_is_help=True,
    add_completion=False,
)

console = Console(highlight=False)

SHELL_COMMANDS = ["/output", "/errors", "/state", "/quit", "/exit", "/help"]


@app.callback()
def callback(
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable verbose logging"),
    ] = False,
) -> None:
    """Interactive Godot session controller."""
    level = logging.DEBUG if verbose or settings.debug else logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def parse_command(raw: str) -> dict[str, Any]:
    """Parse a JSON command, accepting a bare word as ``{"type": word}``."""
    raw = raw.strip()
    if not raw.startswith("{"):
        return {"type": raw}
    return json.loads(raw)


def print_output(output: ProcessOutput, title: str) -> None:
    lines = [*output.output, *(f"[red]{line}[/red]" for line in output.errors)]
    body = "\n".join(lines) if lines else "[dim]no output[/dim]"
    console.print(Panel(body, title=title, border_style="blue"))


# ---------------------------------------------------------------------------
# serve
# ---------------------------------------------------------------------------


async def serve_stdio() -> None:
    from mcp.server.stdio import stdio_server

    async with SessionManager(settings=settings) as manager:
        server = create_session_server(manager)["instance"]
        init_options = server.create_initialization_options()
        try:
            async with stdio_server() as (read_stream, write_stream):
                await server.run(read_stream, write_stream, init_options)
        finally:
            collector.log_summary()


@app.command()
def serve() -> None:
    """Serve the session tools as an MCP server over stdio."""
    try:
        asyncio.run(serve_stdio())
    except KeyboardInterrupt:
        pass


# ---------------------------------------------------------------------------
# run
# ---------------------------------------------------------------------------


async def run_commands(
    project: str,
    commands: list[dict[str, Any]],
    *,
    scene: str | None,
    retries: int,
    tail: int,
) -> None:
    async with SessionManager(settings=settings) as manager:
        info = await manager.start(project, scene)
        console.print(f"[green]Started[/green] {info.project_path} (pid {info.pid})")

        @with_retry(max_attempts=retries)
        async def send(command: dict[str, Any]) -> Any:
            return await manager.send(command)

        for command in commands:
            console.print(f"[dim]→[/dim] {json.dumps(command)}")
            reply = await send(command)
            console.print_json(json.dumps(reply))

        final = await manager.stop()
        print_output(
            ProcessOutput(output=final.output[-tail:], errors=final.errors[-tail:]),
            title=f"Godot output (last {tail} lines)",
        )


@app.command()
def run(
    project: Annotated[str, typer.Argument(help="Godot project directory")],
    command: Annotated[
        list[str] | None,
        typer.Option("--command", "-c", help="JSON command to send (repeatable)"),
    ] = None,
    scene: Annotated[
        str | None,
        typer.Option("--scene", "-s", help="Scene to run instead of the main scene"),
    ] = None,
    retries: Annotated[
        int,
        typer.Option("--retries", "-r", min=1, help="Attempts per command while the receiver starts"),
    ] = 3,
    tail: Annotated[
        int,
        typer.Option("--tail", min=1, help="Output lines to print after stopping"),
    ] = 20,
) -> None:
    """Start a session, send commands in order, print replies, and stop."""
    try:
        commands = [parse_command(raw) for raw in command or []]
    except json.JSONDecodeError as e:
        raise typer.BadParameter(f"Invalid JSON command: {e}") from e
    try:
        asyncio.run(run_commands(project, commands, scene=scene, retries=retries, tail=tail))
    except (SessionError, ValueError) as e:
        message = format_session_error(e) if isinstance(e, SessionError) else str(e)
        console.print(f"[red]error:[/red] {message}")
        raise typer.Exit(1) from e


# ---------------------------------------------------------------------------
# shell
# ---------------------------------------------------------------------------


async def shell_loop(project: str, scene: str | None) -> None:
    from prompt_toolkit import PromptSession
    from prompt_toolkit.completion import WordCompleter
    from prompt_toolkit.formatted_text import FormattedText
    from prompt_toolkit.styles import Style as PTStyle

    async with SessionManager(settings=settings) as manager:
        info = await manager.start(project, scene)
        console.print()
        console.print(
            Panel(
                "\n".join(
                    [
                        "[bold]Godot session[/bold]",
                        f"[dim]project:[/dim] {info.project_path}",
                        f"[dim]receiver:[/dim] {info.receiver} · [dim]pid:[/dim] {info.pid}",
                        "",
                        '[dim]JSON command or bare type (e.g. ping) · /output · /errors · /quit[/dim]',
                    ]
                ),
                border_style="blue",
                width=70,
            )
        )

        pt_session: PromptSession[str] = PromptSession(
            message=FormattedText([("class:prompt", "godot❯ ")]),
            style=PTStyle.from_dict({"prompt": "fg:ansiblue bold"}),
            completer=WordCompleter(SHELL_COMMANDS, sentence=True),
        )

        while True:
            try:
                line = (await pt_session.prompt_async()).strip()
            except (EOFError, KeyboardInterrupt):
                console.print()
                break
            if not line:
                continue
            if line in ("/quit", "/exit"):
                break
            if line == "/help":
                console.print("[dim]" + " · ".join(SHELL_COMMANDS) + "[/dim]")
                continue

            try:
                if line in ("/output", "/errors"):
                    print_output(
                        manager.output(errors_only=line == "/errors", tail=50),
                        title="Godot output",
                    )
                    continue
                command = {"type": "get_state"} if line == "/state" else parse_command(line)
                console.print_json(json.dumps(await manager.send(command)))
            except json.JSONDecodeError as e:
                console.print(f"  [red]invalid JSON:[/red] {e}")
            except (SessionError, ValueError) as e:
                message = format_session_error(e) if isinstance(e, SessionError) else str(e)
                console.print(f"  [red]error:[/red] {message}")

        if manager.state.process is not None:
            print_output(await manager.stop(), title="Godot output")


@app.command()
def shell(
    project: Annotated[str, typer.Argument(help="Godot project directory")],
    scene: Annotated[
        str | None,
        typer.Option("--scene", "-s", help="Scene to run instead of the main scene"),
    ] = None,
) -> None:
    """Interactive prompt sending commands to the running game."""
    try:
        asyncio.run(shell_loop(project, scene))
    except SessionError as e:
        console.print(f"[red]error:[/red] {format_session_error(e)}")
        raise typer.Exit(1) from e


if __name__ == "__main__":
    app()
