"""
In-memory remote service and transport.

``FakeRemote`` implements the server side of the sync protocol well
enough to exercise the engine end to end: an ordered changelog behind
``c<N>`` cursors, temp id resolution within and across requests, and
no-op handling of resubmitted commands. ``InMemoryTransport`` is the
test double handed to ``SyncEngine`` in place of the HTTP transport.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field

from tuido.core.errors import ProtocolError, SyncError
from tuido.core.models import INITIAL_CURSOR, CommandType
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

logger = logging.getLogger(__name__)

INBOX_PROJECT_ID = "inbox"


@dataclass
class _Change:
    seq: int
    kind: str  # "task", "project" or "task_deleted"
    remote_id: str


@dataclass
class FakeRemote:
    """
    Authoritative remote state for tests and local development.

    Example:
        >>> remote = FakeRemote()
        >>> remote.add_task("Created elsewhere")
        't1'
        >>> transport = InMemoryTransport(remote)
    """

    tasks: dict[str, RemoteTask] = field(default_factory=dict)
    projects: dict[str, RemoteProject] = field(default_factory=dict)
    seq: int = 0
    changelog: list[_Change] = field(default_factory=list)
    applied: dict[str, CommandResult] = field(default_factory=dict)
    temp_ids: dict[str, str] = field(default_factory=dict)
    rejections: dict[str, str] = field(default_factory=dict)
    _next_id: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def __post_init__(self) -> None:
        if not self.projects:
            self.add_project("Inbox", project_id=INBOX_PROJECT_ID, inbox=True)

    @property
    def cursor(self) -> str:
        return f"c{self.seq}"

    # ------------------------------------------------------------------
    # Remote-side edits (simulating other clients)
    # ------------------------------------------------------------------

    def _record(self, kind: str, remote_id: str) -> None:
        self.seq += 1
        self.changelog.append(_Change(self.seq, kind, remote_id))

    def _new_id(self, prefix: str) -> str:
        self._next_id += 1
        return f"{prefix}{self._next_id}"

    def add_project(self, name: str, *, project_id: str | None = None, inbox: bool = False) -> str:
        project_id = project_id or self._new_id("p")
        self.projects[project_id] = RemoteProject(
            id=project_id, name=name, order=len(self.projects), inbox_project=inbox
        )
        self._record("project", project_id)
        return project_id

    def add_task(self, content: str, project_id: str = INBOX_PROJECT_ID, **fields: object) -> str:
        task_id = self._new_id("t")
        self.tasks[task_id] = RemoteTask.model_validate(
            {"id": task_id, "content": content, "project_id": project_id, "order": len(self.tasks), **fields}
        )
        self._record("task", task_id)
        return task_id

    def update_task(self, task_id: str, **fields: object) -> None:
        task = self.tasks[task_id]
        self.tasks[task_id] = RemoteTask.model_validate({**task.model_dump(), **fields})
        self._record("task", task_id)

    def delete_task(self, task_id: str) -> None:
        del self.tasks[task_id]
        self._record("task_deleted", task_id)

    def reject(self, temp_id: str, reason: str) -> None:
        """Make the command with ``temp_id`` be rejected when it arrives."""
        self.rejections[temp_id] = reason

    # ------------------------------------------------------------------
    # Protocol
    # ------------------------------------------------------------------

    def handle(self, request: SyncRequest) -> SyncResult:
        with self._lock:
            since = self._parse_cursor(request.cursor)
            results = [self._apply(command) for command in request.commands]
            full_sync = since is None
            changes = self._full_snapshot() if full_sync else self._changes_since(since)
            return SyncResult(
                cursor=self.cursor,
                full_sync=full_sync,
                command_results=results,
                changes=changes,
            )

    def _parse_cursor(self, cursor: str) -> int | None:
        if cursor == INITIAL_CURSOR:
            return None
        if not cursor.startswith("c") or not cursor[1:].isdigit():
            raise ProtocolError(f"Unknown cursor {cursor!r}")
        since = int(cursor[1:])
        if since > self.seq:
            raise ProtocolError(f"Cursor {cursor!r} is ahead of the server")
        return since

    def _apply(self, command: WireCommand) -> CommandResult:
        if command.temp_id in self.applied:
            logger.debug("Ignoring resubmitted command %s", command.temp_id)
            return self.applied[command.temp_id]

        if command.temp_id in self.rejections:
            result = CommandResult(
                temp_id=command.temp_id,
                status=ResultStatus.REJECTED,
                reason=self.rejections[command.temp_id],
            )
        elif command.type == CommandType.CREATE_TASK.value:
            result = self._apply_create(command)
        elif command.type == CommandType.COMPLETE_TASK.value:
            result = self._apply_complete(command)
        else:
            result = CommandResult(
                temp_id=command.temp_id,
                status=ResultStatus.REJECTED,
                reason=f"Unknown command type {command.type!r}",
            )

        self.applied[command.temp_id] = result
        return result

    def _apply_create(self, command: WireCommand) -> CommandResult:
        project_id = command.payload.get("project_id") or INBOX_PROJECT_ID
        if project_id not in self.projects:
            return CommandResult(
                temp_id=command.temp_id,
                status=ResultStatus.REJECTED,
                reason=f"Project {project_id} does not exist",
            )
        task_id = self.add_task(str(command.payload.get("content", "")), project_id)
        self.temp_ids[command.temp_id] = task_id
        return CommandResult(temp_id=command.temp_id, status=ResultStatus.ACCEPTED, remote_id=task_id)

    def _apply_complete(self, command: WireCommand) -> CommandResult:
        ref = str(command.payload.get("id", ""))
        task_id = self.temp_ids.get(ref, ref)
        if task_id not in self.tasks:
            return CommandResult(
                temp_id=command.temp_id,
                status=ResultStatus.REJECTED,
                reason="Task referenced by this completion no longer exists",
            )
        self.update_task(task_id, checked=True)
        return CommandResult(temp_id=command.temp_id, status=ResultStatus.ACCEPTED, remote_id=task_id)

    def _full_snapshot(self) -> Changes:
        return Changes(
            tasks=[t.model_copy() for t in self.tasks.values()],
            projects=[p.model_copy() for p in self.projects.values()],
        )

    def _changes_since(self, since: int) -> Changes:
        task_ids: dict[str, None] = {}
        project_ids: dict[str, None] = {}
        deleted: dict[str, None] = {}
        for change in self.changelog:
            if change.seq <= since:
                continue
            if change.kind == "task":
                task_ids[change.remote_id] = None
                deleted.pop(change.remote_id, None)
            elif change.kind == "project":
                project_ids[change.remote_id] = None
            else:
                task_ids.pop(change.remote_id, None)
                deleted[change.remote_id] = None
        return Changes(
            tasks=[self.tasks[i].model_copy() for i in task_ids if i in self.tasks],
            projects=[self.projects[i].model_copy() for i in project_ids if i in self.projects],
            deleted_task_ids=list(deleted),
        )


class InMemoryTransport:
    """
    SyncTransport backed by a FakeRemote.

    Records every request and can be primed with failures:

        >>> transport = InMemoryTransport(remote)
        >>> transport.fail_next(TransientError("offline"))
    """

    def __init__(
        self,
        remote: FakeRemote | None = None,
        *,
        before_respond: Callable[[SyncRequest], None] | None = None,
    ) -> None:
        self.remote = remote or FakeRemote()
        self.requests: list[SyncRequest] = []
        self.before_respond = before_respond
        self._failures: list[SyncError] = []

    def fail_next(self, error: SyncError) -> None:
        self._failures.append(error)

    def push(self, cursor: str, commands: list[WireCommand]) -> SyncResult:
        return self._call(SyncRequest(cursor=cursor, commands=list(commands)))

    def pull(self, cursor: str) -> SyncResult:
        return self._call(SyncRequest(cursor=cursor))

    def _call(self, request: SyncRequest) -> SyncResult:
        self.requests.append(request)
        if self._failures:
            raise self._failures.pop(0)
        result = self.remote.handle(request)
        if self.before_respond is not None:
            self.before_respond(request)
        return result
