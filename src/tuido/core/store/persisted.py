"""
Durable local mirror of tasks, projects and the sync cursor.

The store is pure storage: the sync engine decides what changes, the
store makes sure each change is either fully durable or not applied at
all. All writes go through :meth:`PersistedStore.transaction`, which hands
out a working copy and only swaps it in after the file has been replaced
atomically.

File format (``store.json``):
    {
        "version": 1,
        "cursor": "opaque-token",
        "tasks": [{"local_id": "...", "content": "...", ...}],
        "projects": [{"remote_id": "...", "name": "Inbox", ...}],
        "id_index": {"<local_id>": "<remote_id>"}
    }
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from tuido.core.errors import CorruptState, TaskNotFoundError
from tuido.core.models import INITIAL_CURSOR, Command, CommandType, Project, Task
from tuido.core.store.atomic import quarantine, read_json, write_json_atomic
from tuido.core.store.migrations import CURRENT_VERSION, migrate

logger = logging.getLogger(__name__)


@dataclass
class StoreState:
    """
    In-memory contents of the store.

    Tasks are kept without their remote id; the binding from local id to
    remote id lives only in ``id_index`` so a rejected create never leaves
    a dangling reference behind.
    """

    cursor: str = INITIAL_CURSOR
    tasks: dict[str, Task] = field(default_factory=dict)
    projects: dict[str, Project] = field(default_factory=dict)
    id_index: dict[str, str] = field(default_factory=dict)
    _by_remote: dict[str, str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        self._by_remote = {remote_id: local_id for local_id, remote_id in self.id_index.items()}

    def copy(self) -> StoreState:
        return StoreState(
            cursor=self.cursor,
            tasks={k: t.model_copy(deep=True) for k, t in self.tasks.items()},
            projects={k: p.model_copy(deep=True) for k, p in self.projects.items()},
            id_index=dict(self.id_index),
        )

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def materialize(self, task: Task) -> Task:
        """Return a copy of ``task`` with its remote id filled in."""
        return task.model_copy(update={"remote_id": self.id_index.get(task.local_id)}, deep=True)

    def local_id_for(self, remote_id: str) -> str | None:
        return self._by_remote.get(remote_id)

    def get_task(self, local_id: str) -> Task:
        try:
            return self.tasks[local_id]
        except KeyError:
            raise TaskNotFoundError(local_id) from None

    def inbox_project(self) -> Project | None:
        for project in self.projects.values():
            if project.is_inbox:
                return project
        return None

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def link(self, local_id: str, remote_id: str) -> None:
        """Record ``local_id`` <-> ``remote_id`` in both indexes."""
        previous = self.id_index.get(local_id)
        if previous is not None and self._by_remote.get(previous) == local_id:
            del self._by_remote[previous]
        self.id_index[local_id] = remote_id
        self._by_remote[remote_id] = local_id

    def unlink(self, local_id: str) -> None:
        remote_id = self.id_index.pop(local_id)
        if self._by_remote.get(remote_id) == local_id:
            del self._by_remote[remote_id]

    def bind(self, local_id: str, remote_id: str) -> bool:
        """
        Bind a local id to its remote id.

        Returns:
            True if the binding is new, False if it already existed
        """
        if self.id_index.get(local_id) == remote_id:
            return False
        other = self.local_id_for(remote_id)
        if other is not None and other != local_id:
            # The remote already pushed this task to us through a delta;
            # keep the locally created record and drop the duplicate.
            logger.debug("Remote id %s already bound to %s, merging into %s", remote_id, other, local_id)
            self.tasks.pop(other, None)
            self.unlink(other)
        self.link(local_id, remote_id)
        return True

    def upsert_task(self, remote_id: str, **fields: Any) -> tuple[Task, bool]:
        """
        Insert or update the task bound to ``remote_id``.

        Returns:
            The stored task and whether it was newly created
        """
        local_id = self.local_id_for(remote_id)
        if local_id is not None and local_id in self.tasks:
            task = self.tasks[local_id]
            self.tasks[local_id] = Task.model_validate({**task.model_dump(), **fields})
            return self.tasks[local_id], False

        task = Task(**fields)
        self.tasks[task.local_id] = task
        self.link(task.local_id, remote_id)
        return task, True

    def delete_task(self, remote_id: str) -> bool:
        local_id = self.local_id_for(remote_id)
        if local_id is None:
            return False
        self.tasks.pop(local_id, None)
        self.unlink(local_id)
        return True

    def upsert_project(self, project: Project) -> bool:
        created = project.remote_id not in self.projects
        self.projects[project.remote_id] = project
        return created

    def apply_command(self, command: Command) -> Task:
        """Apply a command's optimistic effect and return the affected task."""
        if command.type == CommandType.CREATE_TASK:
            if command.temp_id in self.tasks:
                return self.tasks[command.temp_id]
            task = Task(
                local_id=command.temp_id,
                content=command.payload["content"],
                project_id=command.payload.get("project_id"),
                order=len(self.tasks),
            )
            self.tasks[task.local_id] = task
            return task

        task = self.get_task(command.task_ref)
        task.completed = True
        return task

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_document(self) -> dict[str, Any]:
        return {
            "version": CURRENT_VERSION,
            "cursor": self.cursor,
            "tasks": [
                t.model_dump(mode="json", exclude={"remote_id"}) for t in self.tasks.values()
            ],
            "projects": [p.model_dump(mode="json") for p in self.projects.values()],
            "id_index": dict(self.id_index),
        }

    @classmethod
    def from_document(cls, data: dict[str, Any]) -> StoreState:
        """
        Build state from a persisted document, migrating older layouts.

        Raises:
            CorruptState: If the document violates the schema
        """
        data = migrate(data)
        try:
            cursor = data["cursor"]
            if not isinstance(cursor, str):
                raise CorruptState(f"Cursor must be a string, got {type(cursor).__name__}")
            tasks = [Task.model_validate(raw) for raw in data.get("tasks", [])]
            projects = [Project.model_validate(raw) for raw in data.get("projects", [])]
            id_index = {str(k): str(v) for k, v in (data.get("id_index") or {}).items()}
        except KeyError as e:
            raise CorruptState(f"Store is missing field {e}") from e
        except (ValidationError, TypeError, AttributeError) as e:
            raise CorruptState(f"Store violates schema: {e}") from e

        state = cls(
            cursor=cursor,
            tasks={t.local_id: t.model_copy(update={"remote_id": None}) for t in tasks},
            projects={p.remote_id: p for p in projects},
            id_index=id_index,
        )
        dangling = [local_id for local_id in state.id_index if local_id not in state.tasks]
        if dangling:
            raise CorruptState(f"id_index references unknown tasks: {', '.join(dangling)}")
        return state


class PersistedStore:
    """
    Durable local mirror of tasks/projects plus the sync cursor.

    One writer at a time: every write happens under the store lock, and
    readers always see the last fully committed snapshot.

    Example:
        >>> store = PersistedStore(Path("~/.local/share/tuido/store.json"))
        >>> tasks, projects, cursor = store.load()
        >>> with store.transaction() as state:
        ...     state.cursor = "c1"
    """

    FILENAME = "store.json"

    def __init__(self, path: Path) -> None:
        """
        Initialize the store.

        Args:
            path: Path to the store file
        """
        self.path = Path(path)
        self._lock = threading.RLock()
        self._state = StoreState()

    @classmethod
    def in_data_dir(cls, data_dir: Path) -> PersistedStore:
        """Create a store backed by ``<data_dir>/store.json``."""
        return cls(Path(data_dir) / cls.FILENAME)

    # ------------------------------------------------------------------
    # Loading and saving
    # ------------------------------------------------------------------

    def load(self) -> tuple[list[Task], list[Project], str]:
        """
        Load the store from disk.

        A missing file is an empty store with the initial cursor.

        Returns:
            Tuple of (tasks, projects, cursor)

        Raises:
            CorruptState: If the file is unreadable or violates the schema
        """
        data = read_json(self.path)
        state = StoreState() if data is None else StoreState.from_document(data)
        with self._lock:
            self._state = state
            logger.debug(
                "Loaded store %s: %d tasks, %d projects", self.path, len(state.tasks), len(state.projects)
            )
            return self.snapshot()

    def load_or_reset(self) -> bool:
        """
        Load the store, recovering from corruption.

        On CorruptState the bad file is moved aside, a warning is logged
        and the store starts empty with the initial cursor so the next
        sync performs a full resync.

        Returns:
            True if the store had to be reset
        """
        try:
            self.load()
            return False
        except CorruptState as e:
            logger.warning("Local store is corrupt, starting a full resync: %s", e)
            quarantine(self.path)
            with self._lock:
                self._state = StoreState()
            return True

    def save(self, tasks: list[Task], projects: list[Project], cursor: str) -> None:
        """
        Atomically replace the store's contents.

        Task remote ids are taken from the given tasks. Either the new
        state is fully durable or the previous state remains readable.

        Raises:
            StoreWriteError: If the write failed (previous state kept)
        """
        state = StoreState(cursor=cursor)
        for task in tasks:
            state.tasks[task.local_id] = task.model_copy(update={"remote_id": None}, deep=True)
            if task.remote_id is not None:
                state.link(task.local_id, task.remote_id)
        for project in projects:
            state.projects[project.remote_id] = project.model_copy(deep=True)

        with self._lock:
            self._write(state)

    @contextmanager
    def transaction(self) -> Iterator[StoreState]:
        """
        Yield a working copy of the current state and commit it on exit.

        The copy is written to disk atomically and only then becomes the
        visible state. If the block raises or the write fails, nothing
        changes. A block that leaves the state untouched skips the write.
        """
        with self._lock:
            working = self._state.copy()
            yield working
            if working.to_document() == self._state.to_document():
                return
            self._write(working)

    def _write(self, state: StoreState) -> None:
        write_json_atomic(self.path, state.to_document())
        self._state = state
        logger.debug("Committed store %s (cursor=%s)", self.path, state.cursor)

    # ------------------------------------------------------------------
    # Optimistic local mutation
    # ------------------------------------------------------------------

    def apply_local(self, command: Command) -> Task:
        """
        Apply a command's effect immediately for user feedback.

        Never touches the cursor. The change is persisted so it survives
        a restart before the next sync.

        Returns:
            The created or updated task (with remote id, if bound)

        Raises:
            TaskNotFoundError: If a completion targets an unknown task
        """
        with self.transaction() as state:
            task = state.apply_command(command)
            return state.materialize(task)

    # ------------------------------------------------------------------
    # Readers
    # ------------------------------------------------------------------

    def snapshot(self) -> tuple[list[Task], list[Project], str]:
        """Return copies of (tasks, projects, cursor) as last committed."""
        with self._lock:
            state = self._state
            return (
                [state.materialize(t) for t in state.tasks.values()],
                [p.model_copy() for p in state.projects.values()],
                state.cursor,
            )

    def state(self) -> StoreState:
        """Return a detached copy of the full committed state."""
        with self._lock:
            return self._state.copy()

    @property
    def cursor(self) -> str:
        with self._lock:
            return self._state.cursor

    def get_task(self, local_id: str) -> Task:
        with self._lock:
            return self._state.materialize(self._state.get_task(local_id))

    def remote_id_for(self, local_id: str) -> str | None:
        with self._lock:
            return self._state.id_index.get(local_id)

    def inbox_project(self) -> Project | None:
        with self._lock:
            return self._state.inbox_project()
