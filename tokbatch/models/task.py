"""
Work item models: a task per source link and the metadata it resolves to.
"""

import uuid
from dataclasses import dataclass
from enum import Enum


class TaskStatus(Enum):
    """Lifecycle states of a task."""

    IDLE = "idle"
    QUEUED = "queued"
    RESOLVING = "resolving"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class VideoMetadata:
    """Resolved description of a source link."""

    title: str
    fetch_url: str
    thumbnail_url: str | None = None
    size: int | None = None


@dataclass
class Task:
    """
    One unit of work. Instances handed out by the TaskStore are snapshots;
    mutating them has no effect on the store.
    """

    source_url: str
    id: str = ""
    status: TaskStatus = TaskStatus.IDLE
    progress: int = 0
    title: str | None = None
    thumbnail_url: str | None = None
    fetch_url: str | None = None
    error_message: str | None = None

    def __post_init__(self):
        if not self.id:
            self.id = new_task_id()

    @property
    def is_pending(self) -> bool:
        return self.status == TaskStatus.IDLE


def new_task_id() -> str:
    """Generates a short opaque identifier for a task."""
    return uuid.uuid4().hex[:9]
