"""
Process-level wiring for CLI commands.

The CLI entry point owns the store, queue, transport and engine; commands
get them through :func:`get_service`, which builds them once per
invocation from the loaded configuration.
"""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from pathlib import Path

import typer

from tuido.core.config import TuidoConfig, load_config
from tuido.core.credentials import default_credential_provider
from tuido.core.service import TaskService
from tuido.core.transport.base import SyncTransport
from tuido.core.transport.http import HttpSyncTransport

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    """Options from the top-level callback plus the lazily built service."""

    debug: bool = False
    sync_url: str | None = None
    data_dir: Path | None = None
    service: TaskService | None = None
    transport: SyncTransport | None = None


def setup_logging(debug: bool = False) -> None:
    """
    Configure logging for CLI commands.

    Args:
        debug: If True, enable DEBUG level logging
    """
    level = logging.DEBUG if debug else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


def resolve_config(app_ctx: AppContext) -> TuidoConfig:
    """Load config and apply the hidden command-line overrides."""
    config = load_config().model_copy(deep=True)
    if app_ctx.sync_url:
        config.sync = config.sync.model_copy(update={"url": app_ctx.sync_url.rstrip("/")})
    if app_ctx.data_dir:
        config.data_dir = app_ctx.data_dir
    return config


def get_service(ctx: typer.Context) -> TaskService:
    """Return the service for this invocation, building it on first use."""
    app_ctx: AppContext = ctx.ensure_object(AppContext)
    if app_ctx.service is not None:
        return app_ctx.service

    config = resolve_config(app_ctx)
    assert config.data_dir is not None

    transport = app_ctx.transport
    if transport is None:
        http_transport = HttpSyncTransport(
            config.sync.url,
            default_credential_provider(),
            timeout=config.sync.timeout_seconds,
        )
        ctx.call_on_close(http_transport.close)
        transport = http_transport

    logger.debug("Opening data dir %s (sync url %s)", config.data_dir, config.sync.url)
    service = TaskService.open(config.data_dir, transport, batch_size=config.sync.batch_size)
    app_ctx.service = service
    return service
