# tests/test_session.py

from __future__ import annotations

import io
import zipfile
from datetime import date

import pytest

from tokbatch.api.relay import RelayFetcher, RelayTransform
from tokbatch.core.session import BatchSession
from tokbatch.exceptions import InvalidTransitionError
from tokbatch.models.config import BatchConfig
from tokbatch.models.summary import BatchSummary
from tokbatch.models.task import TaskStatus

from .fakes import FakeClock, FakeSession, ScriptedUpstream


def make_session(config: BatchConfig, upstream: ScriptedUpstream, clock: FakeClock) -> BatchSession:
    # Only the identity relay, so cdn.test URLs are served directly.
    fetcher = RelayFetcher(FakeSession(upstream), relays=[RelayTransform("direct")])
    return BatchSession(config, fetcher, sleep=clock.sleep)


def test_add_links_keeps_only_unique_platform_links(config: BatchConfig, clock: FakeClock) -> None:
    session = make_session(config, ScriptedUpstream(), clock)

    added = session.add_links(
        [
            "https://www.tiktok.com/@u/video/1 https://example.com/x",
            "https://vm.tiktok.com/AbCdEf/",
            "https://www.tiktok.com/@u/video/1",
        ]
    )

    assert [t.source_url for t in added] == [
        "https://www.tiktok.com/@u/video/1",
        "https://vm.tiktok.com/AbCdEf/",
    ]


@pytest.mark.asyncio
async def test_retry_all_failed_recovers_without_residue(config: BatchConfig, clock: FakeClock) -> None:
    upstream = ScriptedUpstream(broken_ids={"2"})
    session = make_session(config, upstream, clock)
    tasks = session.add_links(["https://www.tiktok.com/@u/video/1", "https://www.tiktok.com/@u/video/2"])

    await session.run_batch()
    assert session.store.get(tasks[1].id).status == TaskStatus.FAILED
    assert session.stats.failed == 1

    upstream.broken_ids.clear()
    await session.retry_all_failed()

    recovered = session.store.get(tasks[1].id)
    assert recovered.status == TaskStatus.COMPLETED
    assert recovered.error_message is None
    assert recovered.progress == 100
    assert session.stats.failed == 0
    assert session.stats.resolved == 2


@pytest.mark.asyncio
async def test_retry_single_task(config: BatchConfig, clock: FakeClock) -> None:
    upstream = ScriptedUpstream(broken_ids={"1"})
    session = make_session(config, upstream, clock)
    (task,) = session.add_links(["https://www.tiktok.com/@u/video/1"])
    await session.run_batch()

    again = await session.retry_task(task.id)
    assert again.status == TaskStatus.FAILED
    assert again.error_message == "Video not found"

    upstream.broken_ids.clear()
    again = await session.retry_task(task.id)
    assert again.status == TaskStatus.COMPLETED
    assert again.title == "clip 1"

    with pytest.raises(InvalidTransitionError):
        await session.retry_task(task.id)


@pytest.mark.asyncio
async def test_download_one_returns_named_bytes(config: BatchConfig, clock: FakeClock) -> None:
    session = make_session(config, ScriptedUpstream(), clock)
    (task,) = session.add_links(["https://www.tiktok.com/@u/video/5"])

    with pytest.raises(InvalidTransitionError):
        await session.download_one(task.id)

    await session.run_batch()
    name, data = await session.download_one(task.id)

    assert name == "clip_5.mp4"
    assert data == b"video:5.mp4"


@pytest.mark.asyncio
async def test_save_archive_packs_completed_tasks_only(config: BatchConfig, clock: FakeClock) -> None:
    upstream = ScriptedUpstream(broken_ids={"3"}, broken_videos={"2.mp4"})
    session = make_session(config, upstream, clock)
    session.add_links([f"https://www.tiktok.com/@u/video/{i}" for i in range(1, 4)])
    await session.run_batch()

    path = await session.save_archive()

    assert path.name == "tiktok_videos_batch.zip"
    with zipfile.ZipFile(io.BytesIO(path.read_bytes())) as zf:
        names = sorted(n.rsplit("/", 1)[-1] for n in zf.namelist())
    assert names == ["clip_1.mp4", "clip_2_error.txt"]
    assert (session.stats.archived, session.stats.placeholders) == (1, 1)


@pytest.mark.asyncio
async def test_save_archive_with_nothing_completed(config: BatchConfig, clock: FakeClock) -> None:
    session = make_session(config, ScriptedUpstream(), clock)
    assert await session.save_archive() is None


@pytest.mark.asyncio
async def test_summary_counts_completed_tasks(config: BatchConfig, clock: FakeClock) -> None:
    session = make_session(config, ScriptedUpstream(broken_ids={"2"}), clock)
    session.add_links(["https://www.tiktok.com/@u/video/1", "https://www.tiktok.com/@u/video/2"])
    await session.run_batch()

    summary = BatchSummary.from_tasks(session.store.tasks(), today=date(2024, 5, 1))

    assert summary.folder_name == "TikTok_Batch_2024-05-01"
    assert summary.total_videos == 1
    assert session.summary().total_videos == 1


@pytest.mark.asyncio
async def test_is_processing_tracks_the_running_batch(config: BatchConfig, clock: FakeClock) -> None:
    session = make_session(config, ScriptedUpstream(), clock)
    session.add_links(["https://www.tiktok.com/@u/video/1"])
    seen: list[bool] = []
    session.store.subscribe(lambda event, task: seen.append(session.is_processing))

    await session.run_batch()

    assert seen and all(seen)
    assert not session.is_processing
