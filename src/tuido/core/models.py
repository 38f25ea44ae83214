"""
Data models for tasks, projects and queued commands.

Defines Pydantic models shared by the store, the command queue and the
sync engine. Tasks are identified locally by ``local_id``; the binding to
the remote id lives in the store's id index, and the store fills
``Task.remote_id`` in when handing tasks out.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# Cursor value meaning "nothing seen yet" (requests a full snapshot)
INITIAL_CURSOR = "*"


def new_temp_id() -> str:
    """Generate a fresh temporary id (uuid4 hex)."""
    return uuid.uuid4().hex


class TaskPriority(int, Enum):
    """Task priority as used by the remote service (4 is most urgent)."""

    NORMAL = 1
    MEDIUM = 2
    HIGH = 3
    URGENT = 4


class Task(BaseModel):
    """
    A task in the local mirror.

    A task is unconfirmed while ``remote_id`` is None and confirmed once
    the remote has accepted its creation.

    Example:
        >>> task = Task(content="Buy milk", project_id="inbox-1")
        >>> task.is_confirmed
        False
    """

    model_config = ConfigDict(use_enum_values=False)

    local_id: str = Field(
        default_factory=new_temp_id,
        description="Locally assigned id, stable for the life of the task",
    )
    remote_id: str | None = Field(
        default=None,
        description="Remote id (populated from the store's id index)",
    )
    content: str = Field(description="Task text")
    completed: bool = Field(default=False)
    project_id: str | None = Field(
        default=None,
        description="Remote id of the owning project",
    )
    order: int = Field(default=0)
    priority: TaskPriority = Field(default=TaskPriority.NORMAL)

    # Set when a command touching this task was rejected by the remote
    unsynced: bool = Field(default=False)
    rejection_reason: str | None = Field(default=None)

    @property
    def is_confirmed(self) -> bool:
        """Whether the remote has accepted this task's creation."""
        return self.remote_id is not None


class Project(BaseModel):
    """A remote-created project. Tasks reference it by ``remote_id``."""

    remote_id: str
    name: str
    order: int = 0
    is_inbox: bool = False


class CommandType(str, Enum):
    """Command names understood by the remote service."""

    CREATE_TASK = "item_add"
    COMPLETE_TASK = "item_complete"


class CommandStatus(str, Enum):
    """Lifecycle of a queued command."""

    PENDING = "pending"
    IN_FLIGHT = "in_flight"
    COMMITTED = "committed"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self in (CommandStatus.COMMITTED, CommandStatus.REJECTED)


class Command(BaseModel):
    """
    A pending local mutation destined for the remote service.

    ``temp_id`` doubles as the command id. For CreateTask it is also the
    ``local_id`` of the task being created, so the remote's id mapping for
    the command binds directly to the task.

    Example:
        >>> cmd = Command.create_task("Buy milk", project_id="inbox-1")
        >>> cmd.status
        <CommandStatus.PENDING: 'pending'>
    """

    temp_id: str = Field(default_factory=new_temp_id)
    type: CommandType
    payload: dict[str, Any] = Field(default_factory=dict)
    status: CommandStatus = Field(default=CommandStatus.PENDING)
    reason: str | None = Field(
        default=None,
        description="Rejection reason reported by the remote",
    )
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def create_task(
        cls,
        content: str,
        project_id: str | None = None,
        *,
        local_id: str | None = None,
    ) -> Command:
        """Build a CreateTask command. ``local_id`` becomes the temp id."""
        return cls(
            temp_id=local_id or new_temp_id(),
            type=CommandType.CREATE_TASK,
            payload={"content": content, "project_id": project_id},
        )

    @classmethod
    def complete_task(cls, task_local_id: str) -> Command:
        """Build a CompleteTask command referencing a task by local id."""
        return cls(type=CommandType.COMPLETE_TASK, payload={"id": task_local_id})

    @property
    def task_ref(self) -> str:
        """Local id of the task this command creates or targets."""
        if self.type == CommandType.CREATE_TASK:
            return self.temp_id
        return str(self.payload["id"])

    def describe(self) -> str:
        """Short human-readable description for listings."""
        if self.type == CommandType.CREATE_TASK:
            return f"add '{self.payload.get('content', '')}'"
        return f"complete {self.task_ref[:8]}"
