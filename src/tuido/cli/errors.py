"""
Exit codes and user-facing error output for the tuido CLI.

Every command maps core errors to a message plus a suggested fix
through report_error(), so failures read the same everywhere.
"""

from enum import IntEnum

from rich.console import Console
from rich.markup import escape

from tuido.core.errors import (
    AuthError,
    CredentialsError,
    ProtocolError,
    StoreError,
    SyncCancelled,
    TransientError,
    TuidoError,
)

console = Console(stderr=True)


class ExitCode(IntEnum):
    """Standard exit codes for tuido CLI operations."""

    SUCCESS = 0
    """Operation completed successfully."""

    GENERAL_ERROR = 1
    """Sync or storage failure the user cannot fix directly."""

    USER_ERROR = 2
    """User configuration or input error (actionable by user)."""

    SIGINT = 130
    """Terminated by SIGINT (Ctrl+C) - Unix standard."""


def print_error(
    problem: str,
    *,
    reason: str | None = None,
    solution: str | None = None,
) -> None:
    """
    Print a standardized error message with actionable guidance.

    Args:
        problem: Brief description of what went wrong
        reason: Optional explanation of why it happened
        solution: Optional command or action to fix it

    Example:
        >>> print_error(
        ...     "Could not reach the sync server",
        ...     reason="Connection refused",
        ...     solution="tuido sync",
        ... )
    """
    console.print(f"[red]Error:[/red] {problem}")

    if reason:
        console.print(f"[dim]{escape(reason)}[/dim]")

    if solution:
        console.print(f"[cyan]→ Try:[/cyan] {solution}")


def print_warning(message: str) -> None:
    console.print(f"[yellow]⚠[/yellow]  {message}")


def report_error(error: TuidoError) -> ExitCode:
    """
    Print a user-facing message for ``error`` and pick the exit code.

    Returns:
        Exit code the command should terminate with
    """
    if isinstance(error, (AuthError, CredentialsError)):
        print_error(
            "Not authorized to sync",
            reason=str(error),
            solution="tuido set-token <TOKEN>",
        )
        return ExitCode.USER_ERROR

    if isinstance(error, TransientError):
        print_error(
            "Could not reach the sync server",
            reason=f"{error}. Your changes are saved locally.",
            solution="tuido sync",
        )
        return ExitCode.GENERAL_ERROR

    if isinstance(error, ProtocolError):
        details = ", ".join(f"{k}={v!r}" for k, v in error.context.items())
        print_error(
            "The sync server sent an unexpected response",
            reason=f"{error}" + (f" ({details})" if details else ""),
            solution="run again with --debug and report the output",
        )
        return ExitCode.GENERAL_ERROR

    if isinstance(error, SyncCancelled):
        print_warning("Sync cancelled; nothing was changed.")
        return ExitCode.SIGINT

    if isinstance(error, StoreError):
        print_error("Could not save local data", reason=str(error))
        return ExitCode.GENERAL_ERROR

    print_error(str(error))
    return ExitCode.GENERAL_ERROR
