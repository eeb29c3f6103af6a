"""
Data Models Layer.

This package contains the data structures used throughout the application:
the validated configuration, the work items and the batch summary.
"""

from .config import BatchConfig
from .stats import BatchStats
from .summary import BatchSummary
from .task import Task, TaskStatus, VideoMetadata

__all__ = ["BatchConfig", "BatchStats", "BatchSummary", "Task", "TaskStatus", "VideoMetadata"]
