"""Minima CLI.

Main entry point for the minima command: inspect how failures are
classified, how stock conflicts resolve and what a stored session holds.
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from . import __version__
from .config import format_config_for_display, get_config, get_config_path
from .errors import APIError, MinimaError, RequestTimeoutError, TransportError
from .inventory.conflicts import resolve_stock_conflict
from .recovery.classifier import classify_error, user_facing_message
from .recovery.strategies import select_recovery_strategy
from .session.manager import SessionManager
from .session.storage import FileStorage
from .utils.errors import describe_error, format_error, set_debug_mode

console = Console()


@click.group()
@click.version_option(__version__, "--version", "-v", prog_name="minima")
@click.option("--debug", "-d", is_flag=True, help="Enable debug mode with verbose error output")
def main(debug: bool) -> None:
    """Minima - resilience tooling for the inventory client.

    Use --debug for verbose error output with stack traces.
    """
    config = get_config()
    if debug or config.ui.debug:
        set_debug_mode(True)

    level = "DEBUG" if debug else config.ui.log_level.upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@main.command()
@click.option("--status", "-s", type=int, help="HTTP status of the failed response")
@click.option("--message", "-m", default="", help="Failure message")
@click.option("--timeout", is_flag=True, help="Failure was a request timeout")
@click.option("--network", is_flag=True, help="No response was obtained")
def classify(status: int | None, message: str, timeout: bool, network: bool) -> None:
    """Show how a failure is classified and recovered from.

    \\b
    Examples:
        minima classify --status 409
        minima classify --network
        minima classify --message "validation failed"
    """
    failure: Exception
    if network:
        failure = TransportError(message or "Failed to fetch")
    elif timeout:
        failure = RequestTimeoutError()
    elif status is not None:
        failure = APIError(message or f"HTTP {status}", status)
    else:
        failure = MinimaError(message)

    classification = classify_error(failure)

    table = Table(show_header=False, box=None)
    table.add_column(style="bold")
    table.add_column()
    table.add_row("Type", classification.type.value)
    table.add_row("Severity", classification.severity.value)
    table.add_row("Strategy", select_recovery_strategy(classification).value)
    table.add_row("Message", user_facing_message(failure))
    console.print(table)


@main.command("resolve-conflict")
@click.argument("expected", type=float)
@click.argument("actual", type=float)
def resolve_conflict(expected: float, actual: float) -> None:
    """Show how a stock conflict between EXPECTED and ACTUAL resolves.

    \\b
    Examples:
        minima resolve-conflict 100 103    # last write wins
        minima resolve-conflict 100 151    # audit required
    """
    resolution = resolve_stock_conflict(expected, actual)

    table = Table(show_header=False, box=None)
    table.add_column(style="bold")
    table.add_column()
    table.add_row("Strategy", resolution.strategy.value)
    table.add_row("Variance", f"{resolution.conflict_data.variance:g}")
    resolved = resolution.resolved_value
    table.add_row("Resolved value", f"{resolved:g}" if resolved is not None else "-")
    table.add_row("Requires approval", "yes" if resolution.requires_approval else "no")
    table.add_row("Requires audit", "yes" if resolution.requires_audit else "no")
    console.print(table)


@main.command("session-info")
@click.option(
    "--storage",
    "storage_path",
    required=True,
    type=click.Path(dir_okay=False, path_type=Path),
    help="JSON file holding the shared session",
)
def session_info(storage_path: Path) -> None:
    """Report the session stored in a session file.

    The file is only read; an expired session is reported, not cleared.
    """
    try:
        manager = SessionManager(FileStorage(storage_path), config=get_config().session)
        manager.reload()
        info = manager.get_session_info()
    except Exception as e:
        format_error(describe_error(e), console)
        sys.exit(1)

    if info.token_expiry is None:
        console.print("[yellow]No session stored[/yellow]")
        return

    status = "[green]valid[/green]" if info.is_authenticated else "[red]expired[/red]"
    user = info.user or {}
    expires = datetime.fromtimestamp(info.token_expiry / 1000)

    console.print(f"[bold]Session:[/bold] {status}")
    console.print(f"  User: {user.get('name') or user.get('email') or user.get('id') or '-'}")
    console.print(f"  Expires: {expires.strftime('%Y-%m-%d %H:%M:%S')}")
    console.print(f"  Time left: {max(info.time_until_expiry or 0, 0) // 1000}s")


@main.group()
def config() -> None:
    """Show Minima configuration."""
    pass


@config.command("show")
def config_show() -> None:
    """Print the effective configuration."""
    console.print(format_config_for_display(get_config()), markup=False)


@config.command("path")
def config_path() -> None:
    """Print the configuration file location."""
    console.print(str(get_config_path()), markup=False)


if __name__ == "__main__":
    main()
