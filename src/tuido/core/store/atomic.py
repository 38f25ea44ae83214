"""
Atomic JSON file helpers.

Writes go to a temporary file in the target's directory followed by an
atomic rename, so a failed write leaves the previous file readable.
"""

import json
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Any

from tuido.core.errors import CorruptState, StoreWriteError

logger = logging.getLogger(__name__)


def dump_json(data: dict[str, Any]) -> str:
    """Serialize deterministically so unchanged state gives identical bytes."""
    return json.dumps(data, indent=2, ensure_ascii=False, sort_keys=True) + "\n"


def write_json_atomic(path: Path, data: dict[str, Any]) -> None:
    """
    Write ``data`` to ``path`` atomically.

    Args:
        path: Destination file
        data: JSON-serializable document

    Raises:
        StoreWriteError: If the file could not be written or renamed
    """
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.stem}_", suffix=".tmp")
    except OSError as e:
        raise StoreWriteError(f"Failed to prepare write of {path}: {e}", path=path) from e

    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(dump_json(data))
            f.flush()
            os.fsync(f.fileno())

        # Atomic rename (replaces existing file)
        os.replace(temp_path, path)
    except OSError as e:
        try:
            os.unlink(temp_path)
        except OSError:
            pass
        raise StoreWriteError(f"Failed to write {path}: {e}", path=path) from e


def read_json(path: Path) -> dict[str, Any] | None:
    """
    Read a JSON object from ``path``.

    Returns:
        The parsed object, or None if the file does not exist

    Raises:
        CorruptState: If the file is unreadable or not a JSON object
    """
    if not path.exists():
        return None

    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise CorruptState(f"Failed to parse {path}: {e}", path=path) from e
    except (OSError, UnicodeDecodeError) as e:
        raise CorruptState(f"Failed to read {path}: {e}", path=path) from e

    if not isinstance(data, dict):
        raise CorruptState(f"{path} must contain a JSON object", path=path)
    return data


def quarantine(path: Path) -> Path | None:
    """
    Move a corrupt file aside to ``<name>.corrupt`` so it can be inspected.

    Returns:
        The new location, or None if there was nothing to move
    """
    if not path.exists():
        return None
    target = path.with_name(path.name + ".corrupt")
    try:
        shutil.move(str(path), str(target))
    except OSError as e:
        raise StoreWriteError(f"Failed to move corrupt file {path} aside: {e}", path=path) from e
    logger.warning("Moved corrupt state file %s to %s", path, target)
    return target
