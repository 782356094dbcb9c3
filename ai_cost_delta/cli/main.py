"""
CLI interface for AI Cost Delta.

Provides command-line access to reports, clears and event ingestion.
"""

import json
import logging
import sys
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from ai_cost_delta.config.loader import CostDeltaConfig, load_config
from ai_cost_delta.core.formatting import format_money
from ai_cost_delta.sdk.plugin import (
    COMMAND_CLEAR_ALL,
    COMMAND_CLEAR_SESSION,
    COMMANDS,
    REQUEST_FAILED_TEXT,
    CommandHandled,
    CostDeltaPlugin,
)

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class ConsoleNotifier:
    """Notifier that prints to the terminal."""

    def __init__(self, output: Console):
        self.output = output

    def notify(self, title: str, message: str, severity: str, duration_ms: int) -> None:
        self.output.print(f"[bold]{title}[/bold] ({severity})")
        self.output.print(message, markup=False, highlight=False, soft_wrap=True)

    def post(self, session_id: str, text: str) -> None:
        self.output.print(text, markup=False, highlight=False, soft_wrap=True, end="")


def _build_plugin(ctx: typer.Context) -> CostDeltaPlugin:
    config: CostDeltaConfig = ctx.obj["config"]
    return CostDeltaPlugin.from_config(config, ConsoleNotifier(console))


def _resolve_session(plugin: CostDeltaPlugin, session: Optional[str]) -> Optional[str]:
    if session:
        return session
    return plugin.accumulator.repository.load().last_session_id


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    config_path: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to the configuration file"
    ),
    log_level: str = typer.Option(
        "WARNING",
        "--log-level",
        help="Logging level (DEBUG, INFO, WARNING, ERROR)"
    ),
):
    """AI Cost Delta CLI."""
    logging.basicConfig(level=getattr(logging, log_level.upper(), logging.WARNING), format=LOG_FORMAT)
    ctx.obj = {"config": load_config(config_path)}
    if ctx.invoked_subcommand is None:
        console.print("AI Cost Delta - Use --help to see available commands")


@app.command()
def status(ctx: typer.Context):
    """Show the resolved configuration and the last recorded session."""
    config: CostDeltaConfig = ctx.obj["config"]
    plugin = _build_plugin(ctx)
    state = plugin.accumulator.repository.load()
    console.print(f"Endpoint: {config.endpoint}")
    console.print(f"API key: {'configured' if config.api_key else '[yellow]missing[/]'}")
    console.print(f"Provider filter: {config.provider_key or '-'}")
    console.print(f"State file: {config.state_path}")
    console.print(f"Last session: {state.last_session_id or '-'}")
    console.print(f"Tracked sessions: {len(state.session_stats)}")
    snapshot = plugin.accumulator.last_snapshot()
    if snapshot is not None:
        console.print(f"Last total spent: {format_money(snapshot.total_spent)}")


@app.command()
def report(
    ctx: typer.Context,
    session: Optional[str] = typer.Option(
        None,
        "--session",
        "-s",
        help="Session to report on (defaults to the last active session)"
    ),
):
    """Poll the account and show usage for a session and all sessions."""
    plugin = _build_plugin(ctx)
    session_id = _resolve_session(plugin, session) or ""
    text = plugin.render_report(session_id)
    console.print(text, markup=False, highlight=False, soft_wrap=True, end="")
    if text == REQUEST_FAILED_TEXT:
        sys.exit(EXIT_CODE_FAIL)
    sys.exit(EXIT_CODE_PASS)


@app.command()
def clear(
    ctx: typer.Context,
    session: Optional[str] = typer.Option(
        None,
        "--session",
        "-s",
        help="Session to clear (defaults to the last active session)"
    ),
):
    """Clear usage recorded for one session."""
    plugin = _build_plugin(ctx)
    session_id = _resolve_session(plugin, session)
    if not session_id:
        console.print("[red]Error:[/] no session given and no active session recorded")
        sys.exit(EXIT_CODE_FAIL)
    try:
        plugin.handle_command(COMMAND_CLEAR_SESSION, session_id)
    except CommandHandled:
        pass
    sys.exit(EXIT_CODE_PASS)


@app.command("clear-all")
def clear_all(ctx: typer.Context):
    """Clear usage recorded for all sessions."""
    plugin = _build_plugin(ctx)
    try:
        plugin.handle_command(COMMAND_CLEAR_ALL, "")
    except CommandHandled:
        pass
    sys.exit(EXIT_CODE_PASS)


@app.command()
def ingest(
    ctx: typer.Context,
    events_file: str = typer.Argument(
        ...,
        help="JSON-lines file of host events, or '-' for stdin"
    ),
):
    """
    Replay host events through the accounting engine.

    Each line is one JSON event. Lines of the form
    {"type": "command", "command": "cost", "sessionId": "..."} run a command.
    """
    plugin = _build_plugin(ctx)
    try:
        stream = sys.stdin if events_file == "-" else open(events_file, "r", encoding="utf-8")
    except OSError as e:
        console.print(f"[red]Error opening events file:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    processed = 0
    skipped = 0
    try:
        for line_number, line in enumerate(stream, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                event = json.loads(line)
            except ValueError:
                console.print(f"[yellow]Skipping line {line_number}: not valid JSON[/]")
                skipped += 1
                continue
            if isinstance(event, dict) and event.get("type") == "command":
                command = event.get("command")
                if command not in COMMANDS:
                    skipped += 1
                    continue
                try:
                    plugin.handle_command(command, event.get("sessionId") or "")
                except CommandHandled:
                    pass
            else:
                plugin.handle_event(event)
            processed += 1
    except UnicodeDecodeError as e:
        console.print(f"[red]Error reading events file:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)
    finally:
        if stream is not sys.stdin:
            stream.close()

    console.print(f"[green]✓[/] Processed {processed} events ({skipped} skipped)")
    sys.exit(EXIT_CODE_PASS)


if __name__ == "__main__":
    app()
