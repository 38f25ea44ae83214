"""
.env file support.

Two files are read: the user's ``~/.config/tuido/.env`` and a ``.env`` in
the current directory, the latter winning. Neither may override a
variable already exported in the shell, so the API token and sync URL can
always be forced from the command line.
"""

from __future__ import annotations

import os
from collections.abc import Iterable
from pathlib import Path

from dotenv import dotenv_values

from .loader import get_xdg_config_home


def read_env_files(paths: Iterable[Path]) -> dict[str, str]:
    """Merge the given .env files in order; later files win, missing ones are skipped."""
    merged: dict[str, str] = {}
    for path in map(Path, paths):
        if not path.is_file():
            continue
        merged.update({k: v for k, v in dotenv_values(path).items() if k and v is not None})
    return merged


def load_layered_env(
    *,
    project_dir: Path | None = None,
    user_env_paths: Iterable[Path] | None = None,
    project_env_paths: Iterable[Path] | None = None,
) -> dict[str, str]:
    """
    Export .env values that the process environment does not already set.

    Args:
        project_dir: Directory holding the project .env (defaults to cwd)
        user_env_paths: User-level .env files, lowest precedence
        project_env_paths: Project-level .env files

    Returns:
        The variables that were exported
    """
    if user_env_paths is None:
        user_env_paths = [get_xdg_config_home() / "tuido" / ".env"]
    if project_env_paths is None:
        project_env_paths = [(project_dir or Path.cwd()) / ".env"]

    values = read_env_files([*user_env_paths, *project_env_paths])
    exported = {k: v for k, v in values.items() if k not in os.environ}
    os.environ.update(exported)
    return exported
