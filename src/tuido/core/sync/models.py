"""
Data models for the sync engine.

Defines Pydantic models describing the outcome of a sync pass.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class SyncConflict(BaseModel):
    """
    A local unsynced edit that was overwritten by an incoming delta.

    The remote is authoritative once a task is confirmed, so the
    resolution is always ``remote_wins``; the local values are kept here
    so the user can be told what was lost.
    """

    local_id: str = Field(description="Local id of the conflicting task")
    remote_id: str = Field(description="Remote id both sides targeted")

    local_content: str | None = Field(default=None)
    remote_content: str | None = Field(default=None)
    local_completed: bool | None = Field(default=None)
    remote_completed: bool | None = Field(default=None)

    resolution: str = Field(
        default="remote_wins",
        description="How the conflict was resolved",
    )


class SyncReport(BaseModel):
    """
    Result of one sync pass.

    Provides detailed feedback about what happened during the sync.
    """

    cursor: str = Field(description="Cursor after the pass")
    full_sync: bool = Field(default=False, description="Whether the remote sent a full snapshot")

    accepted: list[str] = Field(
        default_factory=list,
        description="Temp ids of commands the remote accepted",
    )
    rejected: list[str] = Field(
        default_factory=list,
        description="Temp ids of commands that ended up Rejected",
    )

    tasks_upserted: int = Field(default=0)
    tasks_deleted: int = Field(default=0)
    projects_upserted: int = Field(default=0)

    conflicts: list[SyncConflict] = Field(
        default_factory=list,
        description="Local edits overwritten by the remote",
    )

    # Timing
    started_at: datetime | None = Field(default=None)
    completed_at: datetime | None = Field(default=None)

    @property
    def duration_seconds(self) -> float | None:
        """Calculate pass duration in seconds."""
        if self.started_at and self.completed_at:
            delta = self.completed_at - self.started_at
            return delta.total_seconds()
        return None

    @property
    def changed(self) -> bool:
        return bool(
            self.accepted
            or self.rejected
            or self.tasks_upserted
            or self.tasks_deleted
            or self.projects_upserted
        )

    def summary(self) -> str:
        """Generate a human-readable summary of the pass."""
        if not self.changed:
            return "Already up to date"

        parts = ["Synced"]
        if self.accepted:
            parts.append(f"{len(self.accepted)} changes sent")
        if self.rejected:
            parts.append(f"{len(self.rejected)} rejected")
        if self.tasks_upserted:
            parts.append(f"{self.tasks_upserted} tasks updated")
        if self.tasks_deleted:
            parts.append(f"{self.tasks_deleted} tasks removed")
        if self.projects_upserted:
            parts.append(f"{self.projects_upserted} projects updated")
        if self.conflicts:
            parts.append(f"{len(self.conflicts)} conflicts resolved")
        return ", ".join(parts)
