# tests/conftest.py

from __future__ import annotations

import pytest

from tokbatch.models.config import BatchConfig
from tokbatch.storage.task_store import TaskStore

from .fakes import FakeClock


@pytest.fixture()
def store() -> TaskStore:
    return TaskStore()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def config(tmp_path) -> BatchConfig:
    """Default settings with the archive written under a temporary directory."""
    return BatchConfig(output_dir=str(tmp_path / "out"))
