"""
Configuration models and loading.

This module provides Pydantic models for tuido configuration
with multi-layer merging: defaults < user < env vars.
"""

from .loader import (
    clear_cache,
    get_default_data_dir,
    get_user_config_path,
    get_xdg_config_home,
    get_xdg_data_home,
    load_config,
)
from .models import SyncConfig, TuidoConfig

__all__ = [
    # Models
    "SyncConfig",
    "TuidoConfig",
    # Loader functions
    "clear_cache",
    "get_default_data_dir",
    "get_user_config_path",
    "get_xdg_config_home",
    "get_xdg_data_home",
    "load_config",
]
