"""
tuido CLI - Main application entry point.

This module sets up the Typer CLI application with all subcommands.
"""

from pathlib import Path

import typer
from rich.console import Console

from tuido import __version__
from tuido.cli import auth, sync, tasks
from tuido.cli.context import AppContext, setup_logging
from tuido.core.config.env import load_layered_env

# Help panel names for command grouping
PANEL_TASKS = "Work with Tasks"
PANEL_SYNC = "Sync with the Server"

app = typer.Typer(
    name="tuido",
    help="Offline-first todo list that syncs with your task service",
    no_args_is_help=True,
    add_completion=True,
    context_settings={"help_option_names": ["--help", "-h"]},
)

console = Console()


@app.callback()
def main(
    ctx: typer.Context,
    debug: bool = typer.Option(
        False,
        "--debug",
        help="Enable debug output with detailed logging",
    ),
    sync_url: str | None = typer.Option(
        None,
        "--sync-url",
        hidden=True,
        help="Override the URL of the sync API (mostly for testing purposes)",
    ),
    data_dir: Path | None = typer.Option(
        None,
        "--data-dir",
        hidden=True,
        help="Override the local data directory (mostly for testing purposes)",
    ),
) -> None:
    """
    tuido - manage your todos from the terminal.

    Changes are saved locally first and synced with the server; when
    you're offline they wait in a queue until the next sync.

    Quick Start:
        1. tuido set-token <TOKEN>   # Store your API token
        2. tuido sync                # Download your tasks
        3. tuido add "Buy milk"      # Add a todo
        4. tuido list                # Show your inbox
        5. tuido complete 1          # Complete the first todo
    """
    # Precedence: OS env > project .env > user .env
    load_layered_env()
    setup_logging(debug)

    app_ctx = ctx.ensure_object(AppContext)
    app_ctx.debug = debug
    if sync_url is not None:
        app_ctx.sync_url = sync_url
    if data_dir is not None:
        app_ctx.data_dir = data_dir


# =============================================================================
# Work with Tasks
# =============================================================================

app.command(name="add", rich_help_panel=PANEL_TASKS)(tasks.add)
app.command(name="complete", rich_help_panel=PANEL_TASKS)(tasks.complete)
app.command(name="list", rich_help_panel=PANEL_TASKS)(tasks.list_inbox)
app.command(name="rejected", rich_help_panel=PANEL_TASKS)(tasks.rejected)

# =============================================================================
# Sync with the Server
# =============================================================================

app.command(name="sync", rich_help_panel=PANEL_SYNC)(sync.sync)
app.command(name="set-token", rich_help_panel=PANEL_SYNC)(auth.set_token)


@app.command()
def version() -> None:
    """Show tuido version and exit."""
    console.print(f"tuido version {__version__}")
    raise typer.Exit(0)


def cli_main() -> None:
    """Main CLI entry point."""
    app()


__all__ = ["app", "cli_main"]
