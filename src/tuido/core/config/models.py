"""
Configuration data models for tuido.

These models define the structure of ``~/.config/tuido/config.json``,
with validation and type safety via Pydantic.
"""

from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SyncConfig(BaseModel):
    """
    Remote sync settings.

    Controls where the sync engine talks to and how much it sends per pass.
    """
    url: str = Field(
        default="https://sync.tuido.app/v1",
        description="Base URL of the sync API (/sync is appended)"
    )
    timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Timeout for a single sync request"
    )
    batch_size: int = Field(
        default=100,
        ge=1,
        description="Maximum queued commands sent in one pass"
    )
    max_retries: int = Field(
        default=3,
        ge=0,
        description="Retries after a transient failure (CLI only)"
    )
    retry_base_delay: float = Field(
        default=1.0,
        gt=0,
        description="Initial backoff delay in seconds"
    )
    watch_interval: float = Field(
        default=60.0,
        gt=0,
        description="Seconds between passes in `tuido sync --watch`"
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Require an http(s) URL and drop any trailing slash."""
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"sync url must start with http:// or https://, got '{v}'")
        return v.rstrip("/")


class TuidoConfig(BaseModel):
    """
    Top-level configuration.

    Example:
        >>> config = TuidoConfig()
        >>> config.sync.batch_size
        100
    """
    model_config = ConfigDict(extra="ignore")

    sync: SyncConfig = Field(default_factory=SyncConfig)
    data_dir: Optional[Path] = Field(
        default=None,
        description="Directory holding store.json and commands.json"
    )
