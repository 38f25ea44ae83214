"""
HTTP implementation of the sync transport.

POSTs the sync request as JSON to ``{base_url}/sync`` with a bearer
token and classifies failures into the sync error taxonomy:

- 401 / 403                           -> AuthError
- 408 / 429 / 5xx, timeouts, network  -> TransientError
- other 4xx, bad JSON, schema errors  -> ProtocolError
"""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx
from pydantic import ValidationError

from tuido.core.credentials import CredentialProvider
from tuido.core.errors import AuthError, CredentialsError, ProtocolError, TransientError
from tuido.core.retry import is_retryable_error
from tuido.core.transport.wire import SyncRequest, SyncResult, WireCommand

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


class HttpSyncTransport:
    """
    Sync transport over HTTPS using httpx.

    Example:
        >>> transport = HttpSyncTransport(
        ...     "https://sync.example.com/v1",
        ...     credentials=EnvCredentialProvider(),
        ... )
        >>> result = transport.pull("*")
    """

    def __init__(
        self,
        base_url: str,
        credentials: CredentialProvider,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        client: httpx.Client | None = None,
    ) -> None:
        """
        Initialize the transport.

        Args:
            base_url: Sync API base URL (``/sync`` is appended)
            credentials: Supplies the bearer token per request
            timeout: Request timeout in seconds
            client: Optional pre-configured httpx client (tests pass one
                backed by ``httpx.MockTransport``)
        """
        self.base_url = base_url.rstrip("/")
        self.credentials = credentials
        self.timeout = timeout
        self._client = client or httpx.Client(timeout=timeout)
        self._owns_client = client is None

    @property
    def sync_url(self) -> str:
        return f"{self.base_url}/sync"

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> HttpSyncTransport:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # SyncTransport
    # ------------------------------------------------------------------

    def push(self, cursor: str, commands: list[WireCommand]) -> SyncResult:
        request = SyncRequest(cursor=cursor, commands=commands)
        result = self._send(request)
        self._check_results(request, result)
        return result

    def pull(self, cursor: str) -> SyncResult:
        return self._send(SyncRequest(cursor=cursor))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _send(self, request: SyncRequest) -> SyncResult:
        try:
            token = self.credentials.get_token()
        except CredentialsError as e:
            raise AuthError(str(e), **e.context) from e

        logger.debug(
            "POST %s (cursor=%s, %d commands)", self.sync_url, request.cursor, len(request.commands)
        )
        try:
            response = self._client.post(
                self.sync_url,
                json=request.model_dump(mode="json"),
                headers={"Authorization": f"Bearer {token}"},
                timeout=self.timeout,
            )
        except httpx.TimeoutException as e:
            raise TransientError(
                f"Sync request timed out after {self.timeout}s", url=self.sync_url
            ) from e
        except httpx.HTTPError as e:
            raise TransientError(f"Sync request failed: {e}", url=self.sync_url) from e

        self._raise_for_status(response)
        return self._parse(response)

    def _raise_for_status(self, response: httpx.Response) -> None:
        status = response.status_code
        if status < 400:
            return

        body = response.text[:500]
        if status in (401, 403):
            raise AuthError(
                "The sync server rejected the API token", status_code=status, body=body
            )

        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            if is_retryable_error(e):
                raise TransientError(
                    f"Sync server returned {status}", status_code=status, body=body
                ) from e
            raise ProtocolError(
                f"Sync server refused the request with {status}",
                status_code=status,
                body=body,
            ) from e

    def _parse(self, response: httpx.Response) -> SyncResult:
        try:
            data: Any = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ProtocolError(
                "Sync response is not valid JSON",
                status_code=response.status_code,
                body=response.text[:500],
            ) from e

        try:
            return SyncResult.model_validate(data)
        except ValidationError as e:
            raise ProtocolError(
                f"Sync response violates the protocol: {e}",
                status_code=response.status_code,
                body=response.text[:500],
            ) from e

    @staticmethod
    def _check_results(request: SyncRequest, result: SyncResult) -> None:
        sent = {c.temp_id for c in request.commands}
        unknown = [r.temp_id for r in result.command_results if r.temp_id not in sent]
        if unknown:
            raise ProtocolError(
                "Sync response has results for commands that were not sent",
                temp_ids=unknown,
            )
