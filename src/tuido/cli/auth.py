"""
tuido CLI - credential command.
"""

import typer
from rich.console import Console

from tuido.cli.errors import ExitCode, print_error
from tuido.core.credentials import FileCredentialProvider
from tuido.core.errors import StoreError

console = Console()


def set_token(
    token: str = typer.Argument(..., help="The API token"),
) -> None:
    """Store an API token for syncing."""
    try:
        path = FileCredentialProvider().set_token(token)
    except ValueError as e:
        print_error(str(e))
        raise typer.Exit(ExitCode.USER_ERROR)
    except (StoreError, OSError) as e:
        print_error("Could not store the API token", reason=str(e))
        raise typer.Exit(ExitCode.GENERAL_ERROR)
    console.print(f"[green]✓[/green] Stored API token in '{path}'.")
