"""
Sync transport protocol.

The engine talks to the remote only through this capability interface;
tests substitute an in-memory implementation at construction time.
"""

from typing import Protocol, runtime_checkable

from tuido.core.transport.wire import SyncResult, WireCommand


@runtime_checkable
class SyncTransport(Protocol):
    """
    Stateless client for the incremental sync endpoint.

    Both operations block until the remote answers (or the transport's
    timeout expires).

    Raises (both operations):
        AuthError: Bad or expired credential
        TransientError: Network failure, timeout or 5xx
        ProtocolError: Malformed response
    """

    def push(self, cursor: str, commands: list[WireCommand]) -> SyncResult:
        """
        Send commands plus the current cursor.

        The remote applies the commands in the given order and returns
        one result per command together with the delta since ``cursor``.
        """
        ...

    def pull(self, cursor: str) -> SyncResult:
        """Fetch the delta since ``cursor`` without sending commands."""
        ...
