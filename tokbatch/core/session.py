"""
The coordinator behind every user-facing operation: adding links, running batches,
retrying failures and producing the archive.
"""

import asyncio
import logging
import time
from collections.abc import Iterable
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

import aiohttp

from tokbatch.api.relay import FetchKind, RelayFetcher
from tokbatch.api.resolver import Resolver
from tokbatch.exceptions import InvalidTransitionError
from tokbatch.models.config import BatchConfig
from tokbatch.models.stats import BatchStats
from tokbatch.models.summary import BatchSummary
from tokbatch.models.task import Task, TaskStatus
from tokbatch.storage.archiver import Archiver
from tokbatch.storage.task_store import TaskStore
from tokbatch.utils.path import archive_destination, extract_links, safe_title

from .scheduler import BatchScheduler

log = logging.getLogger(__name__)


class BatchSession:
    """Wires the store, resolver, scheduler and archiver together for one process."""

    def __init__(
        self,
        config: BatchConfig,
        fetcher: RelayFetcher,
        store: Optional[TaskStore] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.config = config
        self.fetcher = fetcher
        self.store = store or TaskStore()
        self.stats = BatchStats()
        self.start_time = time.monotonic()
        self.resolver = Resolver(
            fetcher,
            endpoint=config.resolve_endpoint,
            max_retries=config.max_rate_limit_retries,
            base_delay=config.rate_limit_base_delay,
            step_delay=config.rate_limit_step_delay,
            sleep=sleep,
        )
        self.scheduler = BatchScheduler(
            self.store,
            self.resolver,
            group_size=config.group_size,
            pacing_delay=config.pacing_delay,
            sleep=sleep,
        )
        self.archiver = Archiver(fetcher, group_size=config.archive_group_size)

    @classmethod
    def from_config(
        cls, config: BatchConfig, session: Optional[aiohttp.ClientSession] = None
    ) -> "BatchSession":
        fetcher = RelayFetcher(
            session,
            metadata_timeout=config.metadata_timeout,
            binary_timeout=config.binary_timeout,
        )
        return cls(config, fetcher)

    async def close(self) -> None:
        await self.fetcher.close()

    async def __aenter__(self) -> "BatchSession":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    @property
    def is_processing(self) -> bool:
        return self.scheduler.is_running

    def add_links(self, links: Iterable[str]) -> list[Task]:
        """Enqueues each link that points at the configured source domain."""
        accepted = extract_links("\n".join(links), self.config.source_domain)
        if not accepted:
            log.warning("[yellow]No valid links to add.[/yellow]")
        return self.store.enqueue_many(accepted)

    async def run_batch(self, cancel_event: Optional[asyncio.Event] = None) -> BatchStats:
        run_stats = await self.scheduler.run(cancel_event)
        self.stats.merge(run_stats)
        return run_stats

    async def retry_task(self, task_id: str) -> Task:
        """Resolves a single failed task again, outside of any batch run."""
        previous = self.store.get(task_id).status
        task = self.store.mark_resolving(task_id)
        if previous == TaskStatus.FAILED:
            self.stats.failed = max(0, self.stats.failed - 1)
        try:
            result: Any = await self.resolver.resolve(task.source_url)
        except Exception as e:
            result = e
        run_stats = BatchStats()
        self.scheduler.record_outcome(task, result, run_stats)
        self.stats.merge(run_stats)
        return self.store.get(task_id)

    async def retry_all_failed(
        self, cancel_event: Optional[asyncio.Event] = None
    ) -> BatchStats:
        """Moves every failed task back to Idle and starts a fresh batch run."""
        failed = self.store.tasks(TaskStatus.FAILED)
        for task in failed:
            self.store.reset_for_retry(task.id)
        # Failures are counted again if they recur.
        self.stats.failed = max(0, self.stats.failed - len(failed))
        log.info(f"Retrying {len(failed)} failed links.")
        return await self.run_batch(cancel_event)

    async def download_one(self, task_id: str) -> tuple[str, bytes]:
        """Fetches the video of a single completed task as (filename, bytes)."""
        task = self.store.get(task_id)
        if task.status != TaskStatus.COMPLETED or not task.fetch_url:
            raise InvalidTransitionError(f"Task {task_id} has no resolved video to download.")
        data = await self.fetcher.fetch(task.fetch_url, FetchKind.BINARY)
        return f"{safe_title(task.title, task.id)}.mp4", data

    def summary(self) -> BatchSummary:
        return BatchSummary.from_tasks(self.store.tasks())

    async def build_archive(self) -> Optional[bytes]:
        completed = [
            t for t in self.store.tasks(TaskStatus.COMPLETED) if t.fetch_url
        ]
        return await self.archiver.run(completed, self.stats)

    async def save_archive(self, destination: Optional[Path] = None) -> Optional[Path]:
        """Builds the archive and writes it to `destination` (or the configured path)."""
        blob = await self.build_archive()
        if blob is None:
            return None
        destination = destination or archive_destination(
            self.config.output_dir, self.config.archive_name
        )
        return await self.archiver.save(blob, destination)

    def elapsed(self) -> float:
        return time.monotonic() - self.start_time
