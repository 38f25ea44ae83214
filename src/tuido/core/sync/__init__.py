"""
Sync engine.

Example:
    >>> from tuido.core.sync import SyncEngine
    >>> engine = SyncEngine(store, queue, transport, batch_size=100)
    >>> report = engine.run_sync()
    >>> if report.conflicts:
    ...     print(f"Remote overrode {len(report.conflicts)} local edits")
"""

from tuido.core.sync.engine import SyncEngine
from tuido.core.sync.models import SyncConflict, SyncReport

__all__ = [
    "SyncEngine",
    "SyncConflict",
    "SyncReport",
]
