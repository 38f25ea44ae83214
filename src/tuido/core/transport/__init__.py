"""
Sync transports.

``HttpSyncTransport`` talks to the real service; ``InMemoryTransport``
backed by ``FakeRemote`` stands in for it in tests.
"""

from tuido.core.transport.base import SyncTransport
from tuido.core.transport.http import HttpSyncTransport
from tuido.core.transport.memory import FakeRemote, InMemoryTransport
from tuido.core.transport.wire import (
    Changes,
    CommandResult,
    RemoteProject,
    RemoteTask,
    ResultStatus,
    SyncRequest,
    SyncResult,
    WireCommand,
)

__all__ = [
    "SyncTransport",
    "HttpSyncTransport",
    "FakeRemote",
    "InMemoryTransport",
    "Changes",
    "CommandResult",
    "RemoteProject",
    "RemoteTask",
    "ResultStatus",
    "SyncRequest",
    "SyncResult",
    "WireCommand",
]
