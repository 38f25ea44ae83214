"""
Sync engine: reconciles the local mirror with the remote service.

One pass (``run_sync``) does the following:

1. Take the oldest Pending commands from the CommandQueue, in order.
2. ``push`` them with the current cursor (or ``pull`` if none are queued).
3. Bind temp ids of accepted creates to their remote ids; flag the tasks
   touched by rejected commands as unsynced.
4. Merge the delta: upsert tasks/projects by remote id, remove deleted
   tasks. An update for an unknown remote id is a create.
5. Resolve conflicts: for a confirmed task with unsynced local edits the
   delta wins. Unconfirmed local tasks have no remote id and are never
   touched by deltas.
6. Commit the store, then the pruned queue. Commands only become
   Committed after the store is durable, so an interrupted pass simply
   re-sends them next time and the remote ignores the resubmission.

Any failure before step 6 (transport error, cancellation, protocol
violation) leaves the store and queue exactly as they were.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future
from datetime import datetime, timezone
from typing import Any

from tuido.core.errors import ProtocolError, SyncCancelled
from tuido.core.models import (
    INITIAL_CURSOR,
    Command,
    CommandStatus,
    CommandType,
    Project,
    Task,
    TaskPriority,
)
from tuido.core.store.persisted import PersistedStore, StoreState
from tuido.core.store.queue import CommandQueue
from tuido.core.sync.models import SyncConflict, SyncReport
from tuido.core.transport.base import SyncTransport
from tuido.core.transport.wire import CommandResult, RemoteTask, SyncResult, WireCommand

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 100


class SyncEngine:
    """
    Orchestrates sync passes between the local store and the remote.

    The store, queue and transport are owned by the caller (normally the
    process entry point) and handed in by reference.

    Only one pass runs at a time. A call made while a pass is in flight
    does not start a second pass; it waits for the running one and
    returns its report (or raises its error).

    Example:
        >>> engine = SyncEngine(store, queue, HttpSyncTransport(url, credentials))
        >>> report = engine.run_sync()
        >>> print(report.summary())
    """

    def __init__(
        self,
        store: PersistedStore,
        queue: CommandQueue,
        transport: SyncTransport,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.store = store
        self.queue = queue
        self.transport = transport
        self.batch_size = batch_size
        self.last_report: SyncReport | None = None

        self._guard = threading.Lock()
        self._inflight: Future[SyncReport] | None = None

    @property
    def is_syncing(self) -> bool:
        with self._guard:
            return self._inflight is not None

    def run_sync(
        self,
        *,
        full: bool = False,
        cancel_event: threading.Event | None = None,
    ) -> SyncReport:
        """
        Run one sync pass, or join the pass already in flight.

        Args:
            full: Ignore the stored cursor and request a full snapshot
            cancel_event: When set before the results are committed, the
                pass is abandoned with state unchanged

        Returns:
            Report describing what the pass changed

        Raises:
            AuthError: Credential rejected (not retried)
            TransientError: Network failure or timeout (state unchanged)
            ProtocolError: Malformed response (state unchanged)
            SyncCancelled: ``cancel_event`` was set (state unchanged)
            StoreWriteError: The commit could not be written
        """
        with self._guard:
            future = self._inflight
            owner = future is None
            if future is None:
                future = Future()
                self._inflight = future

        if not owner:
            logger.debug("Sync already in progress, waiting for it to finish")
            return future.result()

        try:
            report = self._run_pass(full=full, cancel_event=cancel_event)
        except BaseException as e:
            future.set_exception(e)
            raise
        else:
            future.set_result(report)
            self.last_report = report
            return report
        finally:
            with self._guard:
                self._inflight = None

    # ------------------------------------------------------------------
    # The pass
    # ------------------------------------------------------------------

    def _run_pass(self, *, full: bool, cancel_event: threading.Event | None) -> SyncReport:
        started_at = datetime.now(timezone.utc)

        batch = self.queue.next_batch(self.batch_size)
        snapshot = self.store.state()
        cursor = INITIAL_CURSOR if full else snapshot.cursor
        batch_ids = [c.temp_id for c in batch]

        self._check_cancelled(cancel_event)
        self.queue.mark_many(batch_ids, CommandStatus.IN_FLIGHT)
        try:
            if batch:
                wire = [self._to_wire(command, snapshot) for command in batch]
                logger.info("Pushing %d commands (cursor=%s)", len(wire), cursor)
                result = self.transport.push(cursor, wire)
            else:
                logger.info("Pulling changes (cursor=%s)", cursor)
                result = self.transport.pull(cursor)

            self._check_cancelled(cancel_event)
            outcomes = self._match_results(batch, result)
            report = self._commit(batch, outcomes, result)
        except BaseException:
            self.queue.mark_many(batch_ids, CommandStatus.PENDING)
            raise

        report.started_at = started_at
        report.completed_at = datetime.now(timezone.utc)
        logger.info("%s (cursor=%s)", report.summary(), report.cursor)
        return report

    @staticmethod
    def _check_cancelled(cancel_event: threading.Event | None) -> None:
        if cancel_event is not None and cancel_event.is_set():
            logger.info("Sync cancelled before commit")
            raise SyncCancelled("Sync was cancelled")

    @staticmethod
    def _to_wire(command: Command, state: StoreState) -> WireCommand:
        """Translate a queued command, resolving local ids to remote ids."""
        if command.type == CommandType.COMPLETE_TASK:
            local_id = command.task_ref
            # Unbound ids go out as temp ids; the remote resolves them
            # against creates earlier in the same request.
            target = state.id_index.get(local_id, local_id)
            return WireCommand.from_command(command, {**command.payload, "id": target})
        return WireCommand.from_command(command)

    @staticmethod
    def _match_results(
        batch: list[Command], result: SyncResult
    ) -> list[tuple[Command, CommandResult]]:
        """Pair each result with its command, in the order returned."""
        by_id = {c.temp_id: c for c in batch}
        matched: list[tuple[Command, CommandResult]] = []
        seen: set[str] = set()
        for command_result in result.command_results:
            command = by_id.get(command_result.temp_id)
            if command is None or command_result.temp_id in seen:
                raise ProtocolError(
                    "Unexpected command result from remote",
                    temp_id=command_result.temp_id,
                )
            if (
                command_result.accepted
                and command.type == CommandType.CREATE_TASK
                and not command_result.remote_id
            ):
                raise ProtocolError(
                    "Accepted create has no remote id",
                    temp_id=command_result.temp_id,
                )
            seen.add(command_result.temp_id)
            matched.append((command, command_result))

        missing = [c.temp_id for c in batch if c.temp_id not in seen]
        if missing:
            logger.warning("No result for %d commands, will resend: %s", len(missing), missing)
        return matched

    def _commit(
        self,
        batch: list[Command],
        outcomes: list[tuple[Command, CommandResult]],
        result: SyncResult,
    ) -> SyncReport:
        report = SyncReport(cursor=result.cursor, full_sync=result.full_sync)
        queue_outcomes: dict[str, tuple[CommandStatus, str | None]] = {}

        # Commands the user queued after this batch (possibly while the
        # transport call was running) still count as unsynced local edits.
        batch_ids = {c.temp_id for c in batch}
        later = [c for c in self.queue.all() if c.temp_id not in batch_ids]

        with self.store.transaction() as state:
            self._apply_outcomes(state, outcomes, later, queue_outcomes, report)
            unsynced = self._unsynced_local_ids(state, batch, queue_outcomes, later)
            self._apply_changes(state, result, unsynced, report)
            state.cursor = result.cursor

        # Commands the remote did not answer go back to Pending for the next pass
        for command in batch:
            queue_outcomes.setdefault(command.temp_id, (CommandStatus.PENDING, None))

        if queue_outcomes:
            self.queue.commit(queue_outcomes)
        return report

    def _apply_outcomes(
        self,
        state: StoreState,
        outcomes: list[tuple[Command, CommandResult]],
        later: list[Command],
        queue_outcomes: dict[str, tuple[CommandStatus, str | None]],
        report: SyncReport,
    ) -> None:
        for command, command_result in outcomes:
            if command_result.accepted:
                if command.type == CommandType.CREATE_TASK:
                    assert command_result.remote_id is not None
                    if command.temp_id in state.tasks:
                        if state.bind(command.temp_id, command_result.remote_id):
                            logger.debug(
                                "Bound %s -> %s", command.temp_id, command_result.remote_id
                            )
                    else:
                        logger.warning(
                            "Accepted create %s has no local task to bind", command.temp_id
                        )
                queue_outcomes[command.temp_id] = (CommandStatus.COMMITTED, None)
                report.accepted.append(command.temp_id)
                continue

            reason = command_result.reason or "Rejected by the server"
            logger.warning("Command %s (%s) rejected: %s", command.temp_id, command.describe(), reason)
            queue_outcomes[command.temp_id] = (CommandStatus.REJECTED, reason)
            report.rejected.append(command.temp_id)
            self._flag_unsynced(state, command.task_ref, reason)

            if command.type == CommandType.CREATE_TASK:
                # Anything still queued against the rejected task can
                # never succeed; reject it locally too.
                dependent_reason = f"depends on rejected command {command.temp_id}"
                for dependent in later:
                    if (
                        dependent.status == CommandStatus.PENDING
                        and dependent.task_ref == command.temp_id
                        and dependent.temp_id not in queue_outcomes
                    ):
                        queue_outcomes[dependent.temp_id] = (
                            CommandStatus.REJECTED,
                            dependent_reason,
                        )
                        report.rejected.append(dependent.temp_id)

    @staticmethod
    def _flag_unsynced(state: StoreState, local_id: str, reason: str) -> None:
        task = state.tasks.get(local_id)
        if task is None:
            return
        task.unsynced = True
        task.rejection_reason = reason

    @staticmethod
    def _unsynced_local_ids(
        state: StoreState,
        batch: list[Command],
        queue_outcomes: dict[str, tuple[CommandStatus, str | None]],
        later: list[Command],
    ) -> set[str]:
        """Local ids of tasks carrying edits the remote has not confirmed."""
        local_ids = {t.local_id for t in state.tasks.values() if t.unsynced}
        for command in batch:
            if command.temp_id not in queue_outcomes:
                local_ids.add(command.task_ref)
        for command in later:
            if command.status == CommandStatus.PENDING and command.temp_id not in queue_outcomes:
                local_ids.add(command.task_ref)
        return local_ids

    def _apply_changes(
        self,
        state: StoreState,
        result: SyncResult,
        unsynced: set[str],
        report: SyncReport,
    ) -> None:
        changes = result.changes

        if result.full_sync:
            self._drop_missing(state, result, report)
        if changes.is_empty():
            return

        for remote_project in changes.projects:
            project = Project(
                remote_id=remote_project.id,
                name=remote_project.name,
                order=remote_project.order,
                is_inbox=remote_project.inbox_project,
            )
            if state.projects.get(project.remote_id) != project:
                state.upsert_project(project)
                report.projects_upserted += 1

        for remote_task in changes.tasks:
            fields = self._task_fields(remote_task)
            local_id = state.local_id_for(remote_task.id)
            if local_id is not None and local_id in state.tasks:
                current = state.tasks[local_id]
                if all(getattr(current, k) == v for k, v in fields.items()) and not current.unsynced:
                    continue
                if local_id in unsynced:
                    conflict = self._conflict(current, remote_task)
                    if conflict is not None:
                        logger.info(
                            "Remote change to %s overrides unsynced local edit", remote_task.id
                        )
                        report.conflicts.append(conflict)
                fields.update(unsynced=False, rejection_reason=None)
            state.upsert_task(remote_task.id, **fields)
            report.tasks_upserted += 1

        for remote_id in changes.deleted_task_ids:
            if state.delete_task(remote_id):
                report.tasks_deleted += 1

    @staticmethod
    def _drop_missing(state: StoreState, result: SyncResult, report: SyncReport) -> None:
        """On a full snapshot, drop confirmed records the remote no longer has."""
        present = {t.id for t in result.changes.tasks}
        for remote_id in list(state.id_index.values()):
            if remote_id not in present:
                state.delete_task(remote_id)
                report.tasks_deleted += 1
        if result.changes.projects:
            keep = {p.id for p in result.changes.projects}
            for remote_id in list(state.projects):
                if remote_id not in keep:
                    del state.projects[remote_id]

    @staticmethod
    def _task_fields(remote_task: RemoteTask) -> dict[str, Any]:
        return {
            "content": remote_task.content,
            "completed": remote_task.checked,
            "project_id": remote_task.project_id,
            "order": remote_task.order,
            "priority": TaskPriority(remote_task.priority),
        }

    @staticmethod
    def _conflict(local: Task, remote_task: RemoteTask) -> SyncConflict | None:
        if local.content == remote_task.content and local.completed == remote_task.checked:
            return None
        return SyncConflict(
            local_id=local.local_id,
            remote_id=remote_task.id,
            local_content=local.content,
            remote_content=remote_task.content,
            local_completed=local.completed,
            remote_completed=remote_task.checked,
        )
