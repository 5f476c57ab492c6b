"""CLI commands for pmtrack.

Commands:
    pmtrack serve           - Run the HTTP API
    pmtrack ask "PROMPT"    - Run a single quick-update turn
    pmtrack chat            - Interactive multi-turn conversation
    pmtrack projects        - List projects in the store
    pmtrack init            - Write .pmtrack/config.yaml with current settings
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .config import AppConfig
from .core.coordinator import SlotFillingCoordinator, create_coordinator
from .core.intent.taxonomy import ConversationState, TurnResult

console = Console()


def load_config(args: argparse.Namespace) -> AppConfig:
    """Load config for the --data directory given on the command line."""
    return AppConfig.load(Path(args.data_path).resolve())


def render_turn(turn: TurnResult) -> None:
    """Print a turn result."""
    if turn.state == ConversationState.COMPLETE:
        console.print(f"[green]✓[/green] {escape(turn.message)}")
        return

    if turn.state == ConversationState.PARTIAL:
        console.print(f"[yellow]?[/yellow] {escape(turn.message)}")
        if turn.collected:
            table = Table(show_header=False, box=None, padding=(0, 2))
            table.add_column("Field", style="dim")
            table.add_column("Value", style="cyan")
            for key, value in turn.collected.items():
                table.add_row(key, escape(value))
            console.print(table)
        return

    console.print(f"[red]✗[/red] {escape(turn.message)}")
    for error in (turn.error or {}).get("errors", []):
        console.print(f"  [dim]{error['field']}:[/dim] {escape(error['message'])}")


def serve(args: argparse.Namespace) -> int:
    """Run the HTTP API with uvicorn.

    Args:
        args: Parsed arguments (host, port)

    Returns:
        Exit code (0 for success)
    """
    import uvicorn

    from .app import create_app

    config = load_config(args)
    host = args.host or config.host
    port = args.port or config.port

    console.print(f"[bold]pmtrack[/bold] listening on http://{host}:{port}")
    uvicorn.run(create_app(config), host=host, port=port, log_config=None)
    return 0


def ask(args: argparse.Namespace) -> int:
    """Run a single turn and print the outcome.

    Returns:
        Exit code (0 unless the turn failed)
    """
    coordinator = create_coordinator(load_config(args))
    turn = asyncio.run(coordinator.handle(args.prompt))
    render_turn(turn)
    return 0 if turn.success else 1


async def _chat_loop(coordinator: SlotFillingCoordinator) -> None:
    session_id: str | None = None
    while True:
        prompt = await asyncio.to_thread(console.input, "[bold cyan]>[/bold cyan] ")
        prompt = prompt.strip()
        if not prompt:
            continue
        if prompt in {"/quit", "/exit"}:
            break
        if prompt == "/reset":
            if session_id:
                await coordinator.reset(session_id)
            session_id = None
            console.print("[dim]Conversation reset.[/dim]")
            continue

        turn = await coordinator.handle(prompt, session_id)
        render_turn(turn)
        # Completed conversations start fresh on the next prompt
        session_id = turn.session_id if turn.state != ConversationState.COMPLETE else None


def chat(args: argparse.Namespace) -> int:
    """Interactive conversation; /reset starts over, /quit exits."""
    coordinator = create_coordinator(load_config(args))
    console.print("[dim]Type a request. /reset starts over, /quit exits.[/dim]")
    try:
        asyncio.run(_chat_loop(coordinator))
    except EOFError:
        pass
    return 0


def list_projects(args: argparse.Namespace) -> int:
    """List projects with status and progress."""
    coordinator = create_coordinator(load_config(args))
    projects = asyncio.run(coordinator.store.list_projects())

    if not projects:
        console.print("[dim]No projects yet.[/dim]")
        return 0

    table = Table(title="Projects")
    table.add_column("ID", justify="right", style="dim")
    table.add_column("Name", style="cyan")
    table.add_column("Status")
    table.add_column("Progress", justify="right")
    table.add_column("PM", style="dim")

    for project in projects:
        table.add_row(
            str(project.id),
            project.name,
            project.status,
            f"{project.progress}%",
            project.pm_name or "-",
        )

    console.print(table)
    return 0


def init_config(args: argparse.Namespace) -> int:
    """Write the effective configuration to .pmtrack/config.yaml."""
    config = load_config(args)
    config.save()
    console.print(f"[green]✓[/green] Wrote {config.config_file}")
    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create the CLI argument parser.

    Returns:
        Configured ArgumentParser
    """
    parser = argparse.ArgumentParser(
        prog="pmtrack",
        description="pmtrack: conversational quick updates for projects",
    )
    parser.add_argument(
        "--data",
        "-d",
        dest="data_path",
        default=".",
        help="Directory holding .pmtrack/ (default: current directory)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # =========================================================================
    # serve command
    # =========================================================================
    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", help="Bind address (default: from config)")
    serve_parser.add_argument("--port", type=int, help="Bind port (default: from config)")
    serve_parser.set_defaults(func=serve)

    # =========================================================================
    # ask command
    # =========================================================================
    ask_parser = subparsers.add_parser("ask", help="Run a single quick-update turn")
    ask_parser.add_argument("prompt", help="Request, e.g. 'Create an issue called X in Y'")
    ask_parser.set_defaults(func=ask)

    # =========================================================================
    # chat command
    # =========================================================================
    chat_parser = subparsers.add_parser("chat", help="Interactive conversation")
    chat_parser.set_defaults(func=chat)

    # =========================================================================
    # projects command
    # =========================================================================
    projects_parser = subparsers.add_parser("projects", help="List projects")
    projects_parser.set_defaults(func=list_projects)

    # =========================================================================
    # init command
    # =========================================================================
    init_parser = subparsers.add_parser("init", help="Write .pmtrack/config.yaml")
    init_parser.set_defaults(func=init_config)

    return parser


def run_cli(args: list[str] | None = None) -> int:
    """Run the CLI.

    Args:
        args: Command-line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code
    """
    parser = create_parser()
    parsed = parser.parse_args(args)

    if not hasattr(parsed, "func"):
        parser.print_help()
        return 0

    try:
        return parsed.func(parsed)
    except KeyboardInterrupt:
        console.print("\n[dim]Cancelled.[/dim]")
        return 130
    except Exception as e:
        console.print(f"[red]Error:[/red] {e}")
        return 1


def main() -> None:
    """Console script entry point."""
    from .app import setup_logging

    setup_logging()
    sys.exit(run_cli())


__all__ = [
    "create_parser",
    "run_cli",
    "main",
    "render_turn",
    "serve",
    "ask",
    "chat",
    "list_projects",
    "init_config",
]
