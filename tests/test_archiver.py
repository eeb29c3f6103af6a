# tests/test_archiver.py

from __future__ import annotations

import io
import zipfile
from pathlib import Path

import pytest

from tokbatch.api.relay import FetchKind
from tokbatch.exceptions import AllRelaysExhaustedError
from tokbatch.models.stats import BatchStats
from tokbatch.models.task import Task, TaskStatus
from tokbatch.storage.archiver import ARCHIVE_FOLDER, Archiver

from .fakes import FakeFetcher


def completed(n: int, title: str | None = None) -> Task:
    return Task(
        source_url=f"https://www.tiktok.com/@u/video/{n}",
        id=f"id{n}",
        status=TaskStatus.COMPLETED,
        progress=100,
        title=title if title is not None else f"clip {n}",
        fetch_url=f"https://cdn.test/{n}.mp4",
    )


def entries(blob: bytes) -> dict[str, bytes]:
    with zipfile.ZipFile(io.BytesIO(blob)) as zf:
        return {name: zf.read(name) for name in zf.namelist()}


def fetch_by_url(failing: set[str]):
    def handler(url: str):
        if url in failing:
            return AllRelaysExhaustedError("All relays failed to fetch data.")
        return url.encode("utf-8")

    return handler


@pytest.mark.asyncio
async def test_failed_download_becomes_placeholder_and_count_is_preserved() -> None:
    tasks = [completed(i) for i in range(1, 5)]
    fetcher = FakeFetcher(default=fetch_by_url({"https://cdn.test/3.mp4"}))
    stats = BatchStats()

    blob = await Archiver(fetcher).run(tasks, stats)

    files = entries(blob)
    assert len(files) == 4
    assert files[f"{ARCHIVE_FOLDER}/clip_1.mp4"] == b"https://cdn.test/1.mp4"
    placeholder = files[f"{ARCHIVE_FOLDER}/clip_3_error.txt"].decode("utf-8")
    assert placeholder.startswith("Failed to download: https://www.tiktok.com/@u/video/3\nError:")
    assert sum(name.endswith(".mp4") for name in files) == 3
    assert (stats.archived, stats.placeholders) == (3, 1)
    assert stats.archive_size == len(blob)
    assert all(kind is FetchKind.BINARY for _, kind in fetcher.calls)


@pytest.mark.asyncio
async def test_empty_input_produces_nothing() -> None:
    fetcher = FakeFetcher()
    assert await Archiver(fetcher).run([]) is None
    assert fetcher.calls == []


@pytest.mark.asyncio
async def test_downloads_run_in_groups_of_three() -> None:
    tasks = [completed(i) for i in range(1, 8)]
    fetcher = FakeFetcher(default=b"data")

    await Archiver(fetcher, group_size=3).run(tasks)

    assert fetcher.peak_in_flight == 3
    assert [url for url, _ in fetcher.calls] == [t.fetch_url for t in tasks]


@pytest.mark.asyncio
async def test_entry_names_are_sanitized_capped_and_unique() -> None:
    tasks = [
        completed(1, title="Hello World! #fyp"),
        completed(2, title="Hello World! #fyp"),
        completed(3, title="x" * 80),
        completed(4, title=""),
    ]
    fetcher = FakeFetcher(default=b"data")

    names = sorted(entries(await Archiver(fetcher).run(tasks)))

    assert names == sorted(
        [
            f"{ARCHIVE_FOLDER}/Hello_World___fyp.mp4",
            f"{ARCHIVE_FOLDER}/Hello_World___fyp_id2.mp4",
            f"{ARCHIVE_FOLDER}/{'x' * 50}.mp4",
            f"{ARCHIVE_FOLDER}/video_id4.mp4",
        ]
    )


@pytest.mark.asyncio
async def test_task_without_fetch_url_gets_placeholder() -> None:
    task = completed(1)
    task.fetch_url = None
    fetcher = FakeFetcher(default=b"data")

    files = entries(await Archiver(fetcher).run([task]))

    assert list(files) == [f"{ARCHIVE_FOLDER}/clip_1_error.txt"]
    assert fetcher.calls == []


@pytest.mark.asyncio
async def test_save_writes_blob_to_disk(tmp_path: Path) -> None:
    destination = tmp_path / "nested" / "batch.zip"

    written = await Archiver(FakeFetcher()).save(b"PK-bytes", destination)

    assert written == destination
    assert destination.read_bytes() == b"PK-bytes"


@pytest.mark.asyncio
async def test_suffixed_name_skips_names_already_taken() -> None:
    first = completed(1, title="clip")
    literal = completed(2, title="clip_y")
    clashing = completed(3, title="clip")
    clashing.id = "y"
    fetcher = FakeFetcher(default=b"data")

    files = entries(await Archiver(fetcher).run([first, literal, clashing]))

    assert len(files) == 3
    assert sorted(files) == sorted(
        [
            f"{ARCHIVE_FOLDER}/clip.mp4",
            f"{ARCHIVE_FOLDER}/clip_y.mp4",
            f"{ARCHIVE_FOLDER}/clip_y_2.mp4",
        ]
    )


@pytest.mark.asyncio
async def test_repeated_suffix_gets_a_counter() -> None:
    tasks = [completed(i, title="clip") for i in range(1, 4)]
    for task in tasks:
        task.id = "same"
    fetcher = FakeFetcher(default=b"data")

    files = entries(await Archiver(fetcher).run(tasks))

    assert sorted(files) == sorted(
        [
            f"{ARCHIVE_FOLDER}/clip.mp4",
            f"{ARCHIVE_FOLDER}/clip_same.mp4",
            f"{ARCHIVE_FOLDER}/clip_same_2.mp4",
        ]
    )
