"""
Configuration loading.

Three layers are merged, later ones winning key by key:

    model defaults < ~/.config/tuido/config.json < TUIDO_* env vars

The result is validated once and cached for the life of the process.
"""

import json
import logging
import os
from collections.abc import Callable
from pathlib import Path
from typing import Any

from .models import TuidoConfig

logger = logging.getLogger(__name__)

_config_cache: TuidoConfig | None = None


def _positive_int(raw: str) -> int:
    value = int(raw)
    if value < 1:
        raise ValueError(f"must be >= 1, got {value}")
    return value


# env var -> (path into the config dict, parser)
_ENV_OVERRIDES: dict[str, tuple[tuple[str, ...], Callable[[str], Any]]] = {
    "TUIDO_SYNC_URL": (("sync", "url"), str),
    "TUIDO_SYNC_TIMEOUT": (("sync", "timeout_seconds"), float),
    "TUIDO_BATCH_SIZE": (("sync", "batch_size"), _positive_int),
    "TUIDO_DATA_DIR": (("data_dir",), str),
}


def get_xdg_config_home() -> Path:
    """$XDG_CONFIG_HOME, or ~/.config."""
    if xdg_home := os.environ.get("XDG_CONFIG_HOME"):
        return Path(xdg_home)
    return Path.home() / ".config"


def get_xdg_data_home() -> Path:
    """$XDG_DATA_HOME, or ~/.local/share."""
    if xdg_data := os.environ.get("XDG_DATA_HOME"):
        return Path(xdg_data)
    return Path.home() / ".local" / "share"


def get_user_config_path() -> Path:
    return get_xdg_config_home() / "tuido" / "config.json"


def get_default_data_dir() -> Path:
    """Directory for store.json and commands.json when none is configured."""
    return get_xdg_data_home() / "tuido"


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """
    Merge ``override`` into a copy of ``base``, recursing into nested dicts.

    Example:
        >>> deep_merge({"a": 1, "b": {"x": 10}}, {"b": {"y": 20}})
        {'a': 1, 'b': {'x': 10, 'y': 20}}
    """
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = value
    return merged


def load_json_file(path: Path) -> dict[str, Any] | None:
    """
    Read a JSON object from ``path``.

    Returns None when the file is missing, unreadable, or holds something
    other than an object. Parse failures are logged, not raised, so a
    broken config file degrades to the defaults.
    """
    if not path.exists():
        return None
    try:
        data = json.loads(path.read_text())
    except (json.JSONDecodeError, OSError) as e:
        logger.warning("Failed to parse config at %s: %s", path, e)
        return None
    return data if isinstance(data, dict) else None


def apply_env_overrides(config_dict: dict[str, Any]) -> dict[str, Any]:
    """
    Overlay TUIDO_* environment variables onto ``config_dict``.

    Values that fail to parse are skipped with a warning.
    """
    overrides: dict[str, Any] = {}
    for name, (path, parse) in _ENV_OVERRIDES.items():
        raw = os.environ.get(name)
        if not raw:
            continue
        try:
            value = parse(raw)
        except ValueError:
            logger.warning("Invalid %s value '%s', ignoring", name, raw)
            continue
        node = overrides
        for key in path[:-1]:
            node = node.setdefault(key, {})
        node[path[-1]] = value
    return deep_merge(config_dict, overrides)


def get_default_config() -> dict[str, Any]:
    """Defaults as declared on the config models."""
    return TuidoConfig().model_dump(mode="json", exclude_none=True)


def load_config(use_cache: bool = True) -> TuidoConfig:
    """
    Load, merge and validate the configuration.

    Args:
        use_cache: Return the config from a previous call if there is one

    Raises:
        ValidationError: If a layer supplies an invalid value
    """
    global _config_cache

    if use_cache and _config_cache is not None:
        return _config_cache

    merged = get_default_config()
    if user_config := load_json_file(get_user_config_path()):
        merged = deep_merge(merged, user_config)
    merged = apply_env_overrides(merged)

    config = TuidoConfig.model_validate(merged)
    if config.data_dir is None:
        config.data_dir = get_default_data_dir()

    _config_cache = config
    return config


def clear_cache() -> None:
    """Forget the cached config so the next load_config() re-reads every layer."""
    global _config_cache
    _config_cache = None
