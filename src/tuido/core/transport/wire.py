"""
Wire models for the incremental sync protocol.

Request:
    {"cursor": "...", "commands": [{"type", "payload", "temp_id"}]}

Response:
    {
        "cursor": "...",
        "full_sync": false,
        "command_results": [{"temp_id", "status", "remote_id"?, "reason"?}],
        "changes": {"tasks": [...], "projects": [...], "deleted_task_ids": [...]}
    }

Unknown fields in records coming from the remote are ignored so newer
servers can add attributes without breaking older clients. Ids may arrive
as JSON numbers and are always parsed as strings.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from tuido.core.models import Command


class WireCommand(BaseModel):
    """A command as sent to the remote."""

    type: str
    payload: dict[str, Any] = Field(default_factory=dict)
    temp_id: str

    @classmethod
    def from_command(cls, command: Command, payload: dict[str, Any] | None = None) -> WireCommand:
        return cls(
            type=command.type.value,
            payload=dict(command.payload if payload is None else payload),
            temp_id=command.temp_id,
        )


class SyncRequest(BaseModel):
    cursor: str
    commands: list[WireCommand] = Field(default_factory=list)


# Shared by every record parsed from a response
_REMOTE_RECORD = ConfigDict(extra="ignore", coerce_numbers_to_str=True)


class ResultStatus(str, Enum):
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class CommandResult(BaseModel):
    """
    Per-command outcome.

    ``Accepted`` carries the remote id mapping for creates; ``Rejected``
    carries a human-readable reason.
    """

    model_config = _REMOTE_RECORD

    temp_id: str
    status: ResultStatus
    remote_id: str | None = None
    reason: str | None = None

    @property
    def accepted(self) -> bool:
        return self.status == ResultStatus.ACCEPTED


class RemoteTask(BaseModel):
    model_config = _REMOTE_RECORD

    id: str
    content: str
    checked: bool = False
    project_id: str | None = None
    order: int = 0
    priority: int = Field(default=1, ge=1, le=4)


class RemoteProject(BaseModel):
    model_config = _REMOTE_RECORD

    id: str
    name: str
    order: int = 0
    inbox_project: bool = False


class Changes(BaseModel):
    model_config = _REMOTE_RECORD

    tasks: list[RemoteTask] = Field(default_factory=list)
    projects: list[RemoteProject] = Field(default_factory=list)
    deleted_task_ids: list[str] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.tasks or self.projects or self.deleted_task_ids)


class SyncResult(BaseModel):
    """Parsed response of a push or pull."""

    model_config = _REMOTE_RECORD

    cursor: str
    full_sync: bool = False
    command_results: list[CommandResult] = Field(default_factory=list)
    changes: Changes = Field(default_factory=Changes)
