"""Error reporting and display for the Minima client.

Provides consistent error output with:
- One fixed, user-facing sentence per error type
- Recovery hints
- Raw failure text and stack traces only behind an explicit opt-in
  (debug mode or ``show_details=True``)
- Structured error reports for logging
"""

from __future__ import annotations

import logging
import os
import traceback
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any

from ..recovery.classifier import ErrorClassification, classify_error, user_facing_message
from ..recovery.strategies import RecoveryStrategy, select_recovery_strategy

if TYPE_CHECKING:
    from rich.console import Console

logger = logging.getLogger(__name__)

# Debug mode enabled by MINIMA_DEBUG=1 or --debug flag
_debug_mode = os.environ.get("MINIMA_DEBUG", "0") == "1"

SUGGESTIONS = {
    RecoveryStrategy.RETRY: "Try again in a moment.",
    RecoveryStrategy.REFRESH: "Refresh to load the latest data before retrying.",
    RecoveryStrategy.REDIRECT: "Log in again to continue.",
    RecoveryStrategy.MANUAL: "If the problem persists, contact your administrator.",
}


@dataclass
class ErrorInfo:
    """Structured error information for consistent display."""

    message: str
    classification: ErrorClassification
    strategy: RecoveryStrategy
    suggestion: str | None = None
    details: str | None = None
    original_error: BaseException | None = None

    def __post_init__(self) -> None:
        if self.suggestion is None:
            self.suggestion = SUGGESTIONS.get(self.strategy)


def set_debug_mode(enabled: bool) -> None:
    """Enable or disable debug mode for verbose error output."""
    global _debug_mode
    _debug_mode = enabled


def is_debug_mode() -> bool:
    """Check if debug mode is enabled."""
    return _debug_mode


def describe_error(error: BaseException) -> ErrorInfo:
    """Build display information for a failure.

    Args:
        error: The exception to describe.

    Returns:
        ErrorInfo whose message never contains the raw failure text.
    """
    classification = classify_error(error)
    return ErrorInfo(
        message=user_facing_message(error),
        classification=classification,
        strategy=select_recovery_strategy(classification),
        details=f"{type(error).__name__}: {error}",
        original_error=error,
    )


def format_error(
    error: ErrorInfo,
    console: Console,
    show_details: bool | None = None,
) -> None:
    """Format and display an error with consistent styling.

    Args:
        error: Structured error information.
        console: Rich console for output.
        show_details: Show the raw failure text. Defaults to debug mode.
    """
    if show_details is None:
        show_details = _debug_mode

    console.print(f"[bold red]Error:[/bold red] {error.message}")

    if error.suggestion:
        console.print(f"[yellow]Suggestion:[/yellow] {error.suggestion}")

    if show_details and error.details:
        console.print()
        console.print("[dim]Technical details:[/dim]")
        console.print(
            f"[dim]  type={error.classification.type.value} "
            f"severity={error.classification.severity.value} "
            f"strategy={error.strategy.value}[/dim]"
        )
        console.print(f"  {error.details}", style="dim", markup=False)

    # Stack trace only in debug mode
    if _debug_mode and error.original_error:
        console.print()
        console.print("[dim]Stack trace (debug mode):[/dim]")
        tb_lines = traceback.format_exception(
            type(error.original_error),
            error.original_error,
            error.original_error.__traceback__,
        )
        for line in tb_lines:
            console.print(line.rstrip(), style="dim", markup=False)

    if not show_details and error.original_error:
        console.print("[dim]Set MINIMA_DEBUG=1 or use --debug for technical details[/dim]")


def log_error(error: BaseException, context: dict[str, Any] | None = None) -> dict[str, Any]:
    """Log a failure with its classification and context.

    Args:
        error: The exception to log.
        context: Extra information about what was being done.

    Returns:
        The structured error report that was logged.
    """
    classification = classify_error(error)
    report = {
        "message": str(error),
        "name": type(error).__name__,
        "timestamp": datetime.now().isoformat(),
        "context": context or {},
        "classification": {
            "type": classification.type.value,
            "severity": classification.severity.value,
        },
    }
    logger.error(
        f"{report['name']}: {report['message']} "
        f"[{classification.type.value}/{classification.severity.value}] {report['context']}",
        exc_info=error if _debug_mode else None,
    )
    return report
