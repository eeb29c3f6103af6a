"""
Counters for a resolution and archive session.
"""

from dataclasses import dataclass


@dataclass
class BatchStats:
    """Tracks what happened to the links of a session."""

    resolved: int = 0
    failed: int = 0
    cancelled: int = 0
    archived: int = 0
    placeholders: int = 0
    archive_size: int = 0

    def merge(self, other: "BatchStats") -> None:
        """Adds the counters of `other` to this instance."""
        self.resolved += other.resolved
        self.failed += other.failed
        self.cancelled += other.cancelled
        self.archived += other.archived
        self.placeholders += other.placeholders
        self.archive_size += other.archive_size
