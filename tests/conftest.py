"""
Pytest configuration and shared fixtures.

Provides fixtures for isolated XDG directories, a data directory, and a
store/queue/engine wired to the in-memory FakeRemote.
"""

from pathlib import Path

import pytest

from tuido.core.config import clear_cache
from tuido.core.service import TaskService
from tuido.core.store import CommandQueue, PersistedStore
from tuido.core.sync import SyncEngine
from tuido.core.transport import FakeRemote, InMemoryTransport

# ==============================================================================
# Environment Fixtures
# ==============================================================================


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    """Point XDG dirs at tmp_path and drop TUIDO_* variables for every test."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "share"))
    for name in (
        "TUIDO_API_TOKEN",
        "TUIDO_SYNC_URL",
        "TUIDO_DATA_DIR",
        "TUIDO_BATCH_SIZE",
        "TUIDO_SYNC_TIMEOUT",
    ):
        monkeypatch.delenv(name, raising=False)
    clear_cache()
    yield
    clear_cache()


@pytest.fixture
def data_dir(tmp_path) -> Path:
    """Provide an empty data directory."""
    path = tmp_path / "data"
    path.mkdir()
    return path


# ==============================================================================
# Sync Fixtures
# ==============================================================================


@pytest.fixture
def remote() -> FakeRemote:
    """Provide a fresh remote with only the Inbox project."""
    return FakeRemote()


@pytest.fixture
def transport(remote) -> InMemoryTransport:
    return InMemoryTransport(remote)


@pytest.fixture
def store(data_dir) -> PersistedStore:
    store = PersistedStore.in_data_dir(data_dir)
    store.load()
    return store


@pytest.fixture
def queue(data_dir) -> CommandQueue:
    queue = CommandQueue.in_data_dir(data_dir)
    queue.load()
    return queue


@pytest.fixture
def engine(store, queue, transport) -> SyncEngine:
    return SyncEngine(store, queue, transport)


@pytest.fixture
def service(store, queue, engine) -> TaskService:
    return TaskService(store=store, queue=queue, engine=engine)


@pytest.fixture
def read_files(data_dir):
    """Return a function giving the raw bytes of every file in the data directory."""

    def _read() -> dict[str, bytes]:
        return {p.name: p.read_bytes() for p in sorted(data_dir.iterdir()) if p.is_file()}

    return _read
