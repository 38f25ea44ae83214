"""
Forward migrations for the persisted store layout.

A record without a ``version`` field is schema version 0: the legacy
layout written by earlier releases, which stored the raw sync response
(``sync_token``, ``items``, ``user``). Each migration takes the document
at version N and returns it at version N + 1.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from typing import Any

from tuido.core.errors import CorruptState
from tuido.core.models import INITIAL_CURSOR

logger = logging.getLogger(__name__)

CURRENT_VERSION = 1


def _is_temp_id(value: str) -> bool:
    """Legacy stores used uuid4 strings as ids for not-yet-synced items."""
    try:
        uuid.UUID(value)
    except ValueError:
        return False
    return True


def _migrate_v0(data: dict[str, Any]) -> dict[str, Any]:
    user = data.get("user") or {}
    inbox_id = user.get("inbox_project_id") or None
    if inbox_id is not None:
        inbox_id = str(inbox_id)

    tasks: list[dict[str, Any]] = []
    id_index: dict[str, str] = {}
    for position, item in enumerate(data.get("items") or []):
        if not isinstance(item, dict) or "id" not in item:
            raise CorruptState(f"Legacy item #{position} has no id")
        item_id = str(item["id"])
        if _is_temp_id(item_id):
            local_id = uuid.UUID(item_id).hex
        else:
            local_id = uuid.uuid4().hex
            id_index[local_id] = item_id
        tasks.append(
            {
                "local_id": local_id,
                "content": item.get("content", ""),
                "completed": bool(item.get("checked", False)),
                "project_id": str(item["project_id"]) if item.get("project_id") is not None else None,
                "order": position,
            }
        )

    projects: list[dict[str, Any]] = []
    if inbox_id:
        projects.append({"remote_id": inbox_id, "name": "Inbox", "order": 0, "is_inbox": True})

    return {
        "version": 1,
        "cursor": data.get("sync_token") or INITIAL_CURSOR,
        "tasks": tasks,
        "projects": projects,
        "id_index": id_index,
    }


MIGRATIONS: dict[int, Callable[[dict[str, Any]], dict[str, Any]]] = {
    0: _migrate_v0,
}


def migrate(data: dict[str, Any]) -> dict[str, Any]:
    """
    Bring a persisted document up to ``CURRENT_VERSION``.

    Args:
        data: Raw document as read from disk

    Returns:
        Document at the current schema version

    Raises:
        CorruptState: If the version is unknown or newer than supported
    """
    version = data.get("version", 0)
    if not isinstance(version, int) or version < 0:
        raise CorruptState(f"Invalid store version: {version!r}")
    if version > CURRENT_VERSION:
        raise CorruptState(
            f"Store version {version} is newer than supported version {CURRENT_VERSION}",
            version=version,
        )

    while version < CURRENT_VERSION:
        migration = MIGRATIONS.get(version)
        if migration is None:
            raise CorruptState(f"No migration from store version {version}")
        logger.info("Migrating store from version %d to %d", version, version + 1)
        data = migration(data)
        version = data["version"]

    return data
