"""
Task service: the user-facing operations behind the CLI.

Every mutation is enqueued as a Command and applied optimistically to
the local store, so it shows up immediately and survives a restart even
if the next sync is far away.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path

from tuido.core.errors import TaskNotFoundError
from tuido.core.models import Command, Project, Task
from tuido.core.store.persisted import PersistedStore
from tuido.core.store.queue import CommandQueue
from tuido.core.sync.engine import DEFAULT_BATCH_SIZE, SyncEngine
from tuido.core.sync.models import SyncReport
from tuido.core.transport.base import SyncTransport

logger = logging.getLogger(__name__)


@dataclass
class TaskService:
    """
    Add, complete and list tasks against the local mirror.

    Example:
        >>> service = TaskService.open(data_dir, transport)
        >>> task = service.add_task("Buy milk")
        >>> service.sync()
        >>> service.get_task(task.local_id).is_confirmed
        True
    """

    store: PersistedStore
    queue: CommandQueue
    engine: SyncEngine
    warnings: list[str] = field(default_factory=list)

    @classmethod
    def open(
        cls,
        data_dir: Path,
        transport: SyncTransport,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> TaskService:
        """
        Load the store and queue from ``data_dir`` and wire up the engine.

        Corrupt files are moved aside and reported in ``warnings``; a
        corrupt store starts over with a full resync.
        """
        store = PersistedStore.in_data_dir(data_dir)
        queue = CommandQueue.in_data_dir(data_dir)

        warnings: list[str] = []
        if store.load_or_reset():
            warnings.append(
                f"Local task data in {store.path} was unreadable; it will be rebuilt on the next sync."
            )
        if queue.load_or_reset():
            warnings.append(
                f"Queued changes in {queue.path} were unreadable and have been discarded."
            )

        engine = SyncEngine(store, queue, transport, batch_size=batch_size)
        return cls(store=store, queue=queue, engine=engine, warnings=warnings)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add_task(self, content: str, project_id: str | None = None) -> Task:
        """
        Create a task locally and queue its creation.

        Args:
            content: Task text
            project_id: Remote id of the project (defaults to the Inbox)

        Returns:
            The new, unconfirmed task
        """
        content = content.strip()
        if not content:
            raise ValueError("Task content cannot be empty")

        if project_id is None:
            inbox = self.store.inbox_project()
            project_id = inbox.remote_id if inbox else None

        command = Command.create_task(content, project_id)
        self.queue.enqueue(command)
        task = self.store.apply_local(command)
        logger.info("Added task %s", task.local_id)
        return task

    def complete_task(self, local_id: str) -> Task:
        """
        Mark a task complete locally and queue the completion.

        Raises:
            TaskNotFoundError: If no task has this local id
        """
        task = self.store.get_task(local_id)
        if task.completed:
            logger.debug("Task %s is already complete", local_id)
            return task

        command = Command.complete_task(local_id)
        self.queue.enqueue(command)
        task = self.store.apply_local(command)
        logger.info("Completed task %s", local_id)
        return task

    def complete_inbox_item(self, number: int) -> Task:
        """
        Complete the ``number``-th task of :meth:`inbox` (1-based).

        Raises:
            TaskNotFoundError: If the number is out of range
        """
        items = self.inbox()
        if not 1 <= number <= len(items):
            raise TaskNotFoundError(f"#{number}", inbox_size=len(items))
        return self.complete_task(items[number - 1].local_id)

    def dismiss_rejected(self, command_id: str) -> Command:
        """Acknowledge a rejected command so it is no longer reported."""
        return self.queue.dismiss(command_id)

    def sync(
        self,
        *,
        full: bool = False,
        cancel_event: threading.Event | None = None,
    ) -> SyncReport:
        return self.engine.run_sync(full=full, cancel_event=cancel_event)

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def get_task(self, local_id: str) -> Task:
        return self.store.get_task(local_id)

    def tasks(self) -> list[Task]:
        tasks, _, _ = self.store.snapshot()
        return tasks

    def projects(self) -> list[Project]:
        _, projects, _ = self.store.snapshot()
        return sorted(projects, key=lambda p: p.order)

    def inbox(self) -> list[Task]:
        """
        Incomplete tasks in the Inbox, in display order.

        Tasks without a project (added before the first sync) count as
        Inbox tasks.
        """
        inbox = self.store.inbox_project()
        inbox_id = inbox.remote_id if inbox else None
        items = [
            t
            for t in self.tasks()
            if not t.completed and (t.project_id is None or t.project_id == inbox_id)
        ]
        # sorted() is stable, so ties keep insertion order
        return sorted(items, key=lambda t: t.order)

    def pending(self) -> list[Command]:
        return self.queue.pending()

    def rejected(self) -> list[Command]:
        return self.queue.rejected()
