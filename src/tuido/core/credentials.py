"""
Credential providers for the sync transport.

The transport asks a provider for an opaque bearer token on every
request; the sync engine never sees it. Tokens come from the
``TUIDO_API_TOKEN`` environment variable (including values loaded from
``.env`` files) or from ``auth.json`` in the user config directory.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Protocol

from tuido.core.config.loader import get_xdg_config_home
from tuido.core.errors import CredentialsError
from tuido.core.store.atomic import write_json_atomic

logger = logging.getLogger(__name__)

TOKEN_ENV_VAR = "TUIDO_API_TOKEN"

MISSING_TOKEN_MESSAGE = (
    "Could not find an API token. Get one from your account's integration "
    "settings, then run 'tuido set-token <TOKEN>'."
)


class CredentialProvider(Protocol):
    """Supplies an opaque bearer credential."""

    def get_token(self) -> str:
        """
        Return the current token.

        Raises:
            CredentialsError: If no token is available
        """
        ...


def get_auth_file_path() -> Path:
    """Path to ``auth.json`` (``~/.config/tuido/auth.json`` or XDG equivalent)."""
    return get_xdg_config_home() / "tuido" / "auth.json"


class StaticCredentialProvider:
    """Provider holding a fixed token."""

    def __init__(self, token: str) -> None:
        if not token:
            raise ValueError("token cannot be empty")
        self._token = token

    def get_token(self) -> str:
        return self._token


class FileCredentialProvider:
    """Reads and writes the token stored in ``auth.json``."""

    def __init__(self, path: Path | None = None) -> None:
        self.path = path or get_auth_file_path()

    def get_token(self) -> str:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            raise CredentialsError(MISSING_TOKEN_MESSAGE, path=str(self.path)) from None
        except (OSError, json.JSONDecodeError) as e:
            raise CredentialsError(
                f"Could not read credentials file '{self.path}': {e}", path=str(self.path)
            ) from e

        token = data.get("api_token") if isinstance(data, dict) else None
        if not token or not isinstance(token, str):
            raise CredentialsError(
                f"Credentials file '{self.path}' has no api_token", path=str(self.path)
            )
        return token

    def set_token(self, token: str) -> Path:
        """
        Store ``token``, readable by the current user only.

        Returns:
            Path of the credentials file
        """
        if not token.strip():
            raise ValueError("token cannot be empty")
        write_json_atomic(self.path, {"api_token": token.strip()})
        os.chmod(self.path, 0o600)
        logger.info("Stored API token in %s", self.path)
        return self.path


class EnvCredentialProvider:
    """
    Prefers ``TUIDO_API_TOKEN`` and falls back to another provider.

    Example:
        >>> provider = EnvCredentialProvider(fallback=FileCredentialProvider())
        >>> token = provider.get_token()
    """

    def __init__(self, fallback: CredentialProvider | None = None) -> None:
        self.fallback = fallback

    def get_token(self) -> str:
        if token := os.environ.get(TOKEN_ENV_VAR):
            return token
        if self.fallback is not None:
            return self.fallback.get_token()
        raise CredentialsError(MISSING_TOKEN_MESSAGE)


def default_credential_provider() -> CredentialProvider:
    """Environment first, then ``auth.json``."""
    return EnvCredentialProvider(fallback=FileCredentialProvider())
