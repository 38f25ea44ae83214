"""
tuido CLI - task commands.

Every change is saved locally first and then synced, unless --no-sync is
given or the server can't be reached; queued changes go out with the
next successful sync.
"""

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from tuido.cli.context import get_service
from tuido.cli.errors import ExitCode, print_error, print_warning, report_error
from tuido.core.errors import StoreError, TaskNotFoundError, TuidoError
from tuido.core.models import Task
from tuido.core.service import TaskService

console = Console()


def _sync_after_change(service: TaskService) -> None:
    """Try to sync right away; a failure leaves the change queued."""
    try:
        report = service.sync()
    except TuidoError as e:
        print_warning(
            f"Not synced yet: {escape(str(e))}. The change is saved and will be sent later."
        )
        return
    if report.rejected:
        print_warning(
            f"{len(report.rejected)} change(s) were rejected by the server. "
            "Run 'tuido rejected' for details."
        )


def _task_label(task: Task) -> str:
    label = escape(task.content)
    if task.unsynced:
        label += f" [red](not synced: {escape(task.rejection_reason or 'rejected')})[/red]"
    elif not task.is_confirmed:
        label += " [dim](pending)[/dim]"
    return label


def add(
    ctx: typer.Context,
    todo: str = typer.Argument(..., help="The text of the todo"),
    no_sync: bool = typer.Option(
        False,
        "--no-sync",
        "-n",
        help="Don't sync data with the server",
    ),
) -> None:
    """
    Add a new todo to your inbox.

    Examples:
        tuido add "Buy milk"
        tuido add "Call Sam" --no-sync
    """
    service = get_service(ctx)
    try:
        service.add_task(todo)
    except ValueError as e:
        print_error(str(e))
        raise typer.Exit(ExitCode.USER_ERROR)
    except StoreError as e:
        raise typer.Exit(report_error(e))

    console.print(f"[green]✓[/green] '{escape(todo.strip())}' added to inbox.")
    if not no_sync:
        _sync_after_change(service)


def complete(
    ctx: typer.Context,
    number: int = typer.Argument(
        ..., help="The number of the todo as displayed by the `list` command"
    ),
    no_sync: bool = typer.Option(
        False,
        "--no-sync",
        "-n",
        help="Don't sync data with the server",
    ),
) -> None:
    """
    Mark a todo in the inbox complete.

    Examples:
        tuido list
        tuido complete 2
    """
    service = get_service(ctx)
    try:
        task = service.complete_inbox_item(number)
    except TaskNotFoundError:
        print_error(
            f"There is no todo number {number} in your inbox",
            solution="tuido list",
        )
        raise typer.Exit(ExitCode.USER_ERROR)
    except StoreError as e:
        raise typer.Exit(report_error(e))

    console.print(f"[green]✓[/green] '{escape(task.content)}' marked complete.")
    if not no_sync:
        _sync_after_change(service)


def list_inbox(ctx: typer.Context) -> None:
    """List the items in your inbox."""
    service = get_service(ctx)
    for warning in service.warnings:
        print_warning(warning)

    items = service.inbox()
    console.print("[bold]Inbox:[/bold]")
    if not items:
        console.print("[dim]Nothing to do.[/dim]")
    for index, task in enumerate(items, 1):
        console.print(f"[{index}] {_task_label(task)}", highlight=False)

    rejected = service.rejected()
    if rejected:
        print_warning(
            f"{len(rejected)} change(s) were rejected by the server. Run 'tuido rejected'."
        )


def rejected(
    ctx: typer.Context,
    dismiss: str | None = typer.Option(
        None,
        "--dismiss",
        "-d",
        help="Acknowledge a rejected change by id (or unique id prefix)",
    ),
) -> None:
    """
    Show changes the server rejected.

    Rejected changes stay listed until you dismiss them.

    Examples:
        tuido rejected
        tuido rejected --dismiss 3f2a
    """
    service = get_service(ctx)
    commands = service.rejected()

    if dismiss is not None:
        matches = [c for c in commands if c.temp_id.startswith(dismiss)]
        if len(matches) != 1:
            problem = "No rejected change matches" if not matches else "Ambiguous id prefix"
            print_error(f"{problem} '{dismiss}'", solution="tuido rejected")
            raise typer.Exit(ExitCode.USER_ERROR)
        service.dismiss_rejected(matches[0].temp_id)
        console.print(f"[green]✓[/green] Dismissed {escape(matches[0].describe())}")
        return

    if not commands:
        console.print("[green]No rejected changes.[/green]")
        return

    table = Table(title="Rejected changes")
    table.add_column("ID", style="cyan")
    table.add_column("Change")
    table.add_column("Reason", style="red")
    for command in commands:
        table.add_row(command.temp_id[:8], escape(command.describe()), escape(command.reason or ""))
    console.print(table)
