"""
Read-only aggregate describing a finished batch.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date

from .task import Task, TaskStatus


@dataclass(frozen=True)
class BatchSummary:
    """Label and counts computed from the completed subset of a batch."""

    folder_name: str
    description: str
    total_videos: int

    @classmethod
    def from_tasks(cls, tasks: Iterable[Task], today: date | None = None) -> "BatchSummary":
        completed = [t for t in tasks if t.status == TaskStatus.COMPLETED]
        day = (today or date.today()).isoformat()
        return cls(
            folder_name=f"TikTok_Batch_{day}",
            description="Batch downloaded videos",
            total_videos=len(completed),
        )
