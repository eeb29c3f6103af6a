"""
Storage Layer.

This package holds the task store, the zip archiver and the configuration file.
"""

from .archiver import Archiver
from .config_manager import ConfigManager
from .task_store import TaskStore

__all__ = ["Archiver", "ConfigManager", "TaskStore"]
