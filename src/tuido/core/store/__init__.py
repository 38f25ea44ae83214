"""
Local persistence: the task mirror and the command queue.

Both are JSON files in the data directory, written atomically.

Example:
    >>> from tuido.core.store import CommandQueue, PersistedStore
    >>> store = PersistedStore.in_data_dir(data_dir)
    >>> queue = CommandQueue.in_data_dir(data_dir)
    >>> store.load_or_reset()
    >>> queue.load_or_reset()
"""

from tuido.core.store.persisted import PersistedStore, StoreState
from tuido.core.store.queue import CommandQueue

__all__ = [
    "CommandQueue",
    "PersistedStore",
    "StoreState",
]
