"""
tuido CLI - sync command.

Runs a sync pass against the server: sends queued changes and merges
remote changes into the local mirror.
"""

import logging
import threading
import time
from collections.abc import Callable

import typer
from rich.console import Console
from rich.markup import escape

from tuido.cli.context import AppContext, get_service, resolve_config
from tuido.cli.errors import ExitCode, print_warning, report_error
from tuido.core.errors import TransientError, TuidoError
from tuido.core.retry import RetryConfig, with_retry
from tuido.core.service import TaskService
from tuido.core.sync.models import SyncReport

logger = logging.getLogger(__name__)
console = Console()


def _print_report(report: SyncReport) -> None:
    console.print(f"[green]✓[/green] {report.summary()}")
    for conflict in report.conflicts:
        content = escape(conflict.remote_content or "")
        print_warning(f"Server version of '{content}' replaced your unsynced edit")
    if report.rejected:
        print_warning(
            f"{len(report.rejected)} change(s) were rejected. Run 'tuido rejected' for details."
        )


def watch(
    service: TaskService,
    *,
    interval: float,
    backoff: RetryConfig,
    stop_event: threading.Event | None = None,
    max_passes: int | None = None,
    sleep: Callable[[float], None] = time.sleep,
    on_report: Callable[[SyncReport], None] | None = None,
) -> int:
    """
    Sync repeatedly until stopped.

    Transient failures back off exponentially; any other sync error ends
    the loop and is re-raised.

    Returns:
        Number of passes that completed successfully
    """
    stop_event = stop_event or threading.Event()
    completed = 0
    failures = 0
    passes = 0

    while not stop_event.is_set():
        if max_passes is not None and passes >= max_passes:
            break
        passes += 1
        try:
            report = service.sync(cancel_event=stop_event)
        except TransientError as e:
            delay = backoff.calculate_delay(failures)
            failures += 1
            logger.warning("Sync failed (%s); retrying in %.1fs", e, delay)
            sleep(delay)
            continue

        failures = 0
        completed += 1
        if on_report is not None:
            on_report(report)
        sleep(interval)

    return completed


def sync(
    ctx: typer.Context,
    full: bool = typer.Option(
        False,
        "--full",
        "-f",
        help="Ignore the saved position and fetch everything from the server",
    ),
    watch_mode: bool = typer.Option(
        False,
        "--watch",
        "-w",
        help="Keep syncing periodically until interrupted",
    ),
    interval: float | None = typer.Option(
        None,
        "--interval",
        "-i",
        min=1.0,
        help="Seconds between passes with --watch",
    ),
    retries: int | None = typer.Option(
        None,
        "--retries",
        "-r",
        min=0,
        help="Retries after a network failure",
    ),
) -> None:
    """
    Sync data with the server.

    Examples:
        tuido sync                 # Send queued changes, fetch new ones
        tuido sync --full          # Re-download everything
        tuido sync --watch         # Keep syncing every minute
    """
    service = get_service(ctx)
    config = resolve_config(ctx.ensure_object(AppContext))
    for warning in service.warnings:
        print_warning(warning)

    max_retries = config.sync.max_retries if retries is None else retries

    if watch_mode:
        base_delay = config.sync.retry_base_delay
        backoff = RetryConfig(
            base_delay=base_delay,
            max_delay=max(base_delay, config.sync.watch_interval * 10),
        )
        if full:
            _run_once(service, full=True, max_retries=max_retries, base_delay=base_delay)
        console.print("[blue]Syncing periodically, press Ctrl+C to stop...[/blue]")
        try:
            watch(
                service,
                interval=interval or config.sync.watch_interval,
                backoff=backoff,
                on_report=lambda r: console.print(f"[dim]{r.summary()}[/dim]"),
            )
        except KeyboardInterrupt:
            raise typer.Exit(ExitCode.SIGINT)
        except TuidoError as e:
            raise typer.Exit(report_error(e))
        return

    _run_once(service, full=full, max_retries=max_retries, base_delay=config.sync.retry_base_delay)


def _run_once(service: TaskService, *, full: bool, max_retries: int, base_delay: float) -> None:
    @with_retry(
        max_retries=max_retries,
        base_delay=base_delay,
        is_retryable=lambda e: isinstance(e, TransientError),
    )
    def _attempt() -> SyncReport:
        return service.sync(full=full)

    console.print("[blue]Syncing...[/blue]")
    try:
        report = _attempt()
    except TuidoError as e:
        raise typer.Exit(report_error(e))
    except KeyboardInterrupt:
        raise typer.Exit(ExitCode.SIGINT)
    _print_report(report)
