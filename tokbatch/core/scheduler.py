"""
Drains pending tasks through the resolver in small, paced groups.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from tokbatch.api.resolver import Resolver
from tokbatch.exceptions import (
    InvalidTransitionError,
    ResolutionFailedError,
    TaskNotFoundError,
)
from tokbatch.models.stats import BatchStats
from tokbatch.models.task import Task
from tokbatch.storage.task_store import DEFAULT_FAILURE_REASON, TaskStore

log = logging.getLogger(__name__)


class BatchScheduler:
    """
    Resolves every pending task of the store, one group at a time.

    Members of a group resolve concurrently and the group settles completely before
    the next one starts. Between groups the scheduler waits `pacing_delay` seconds so
    the upstream service sees at most `group_size` requests per pacing window.
    """

    def __init__(
        self,
        store: TaskStore,
        resolver: Resolver,
        group_size: int = 1,
        pacing_delay: float = 1.3,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        if group_size < 1:
            raise ValueError("Group size must be at least 1.")
        self.store = store
        self.resolver = resolver
        self.group_size = group_size
        self.pacing_delay = pacing_delay
        self._sleep = sleep
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    async def run(self, cancel_event: Optional[asyncio.Event] = None) -> BatchStats:
        """
        Processes the tasks that are pending when the call starts.

        A call made while another run is in flight returns immediately with empty
        stats. When `cancel_event` is set, the run stops at the next group boundary
        and tasks it had not started go back to Idle.
        """
        stats = BatchStats()
        if self._running:
            log.debug("Batch run already in progress; ignoring request.")
            return stats

        self._running = True
        snapshot: list[Task] = []
        try:
            snapshot = [self.store.mark_queued(t.id) for t in self.store.pending()]
            if not snapshot:
                log.info("No pending links to resolve.")
                return stats

            groups = [
                snapshot[i : i + self.group_size]
                for i in range(0, len(snapshot), self.group_size)
            ]
            log.info(
                f"Resolving {len(snapshot)} links in {len(groups)} group(s) "
                f"of up to {self.group_size}."
            )

            for index, group in enumerate(groups):
                if cancel_event is not None and cancel_event.is_set():
                    stats.cancelled += self._release(groups[index:])
                    log.warning(
                        f"[yellow]Batch cancelled; {stats.cancelled} links left pending.[/yellow]"
                    )
                    break

                await self._process_group(group, stats)

                if index + 1 < len(groups):
                    await self._pause(cancel_event)
            return stats
        finally:
            self._release([snapshot])
            self._running = False

    async def _process_group(self, group: list[Task], stats: BatchStats) -> None:
        started: list[Task] = []
        for task in group:
            try:
                started.append(self.store.mark_resolving(task.id))
            except (TaskNotFoundError, InvalidTransitionError) as e:
                log.debug(f"Skipping task {task.id}: {e}")

        results = await asyncio.gather(
            *(self.resolver.resolve(task.source_url) for task in started),
            return_exceptions=True,
        )

        for task, result in zip(started, results):
            self.record_outcome(task, result, stats)

    def record_outcome(self, task: Task, result: Any, stats: BatchStats) -> None:
        """Writes one resolution outcome back to the store."""
        if isinstance(result, BaseException) and not isinstance(result, Exception):
            raise result

        try:
            if isinstance(result, Exception):
                if isinstance(result, ResolutionFailedError):
                    reason = result.reason
                else:
                    reason = str(result) or DEFAULT_FAILURE_REASON
                    log.debug(f"Unexpected resolver error for {task.id}", exc_info=result)
                self.store.mark_failed(task.id, reason)
                stats.failed += 1
                log.error(f"[red]✗ {task.source_url}: {reason}[/red]")
            else:
                completed = self.store.mark_completed(task.id, result)
                stats.resolved += 1
                log.info(f"[green]✓ Resolved:[/green] {completed.title}")
        except TaskNotFoundError:
            log.debug(f"Task {task.id} was removed while resolving; dropping result.")

    async def _pause(self, cancel_event: Optional[asyncio.Event]) -> None:
        """Waits out the pacing delay, returning early if the run gets cancelled."""
        if cancel_event is None:
            await self._sleep(self.pacing_delay)
            return

        sleeper = asyncio.ensure_future(self._sleep(self.pacing_delay))
        waiter = asyncio.ensure_future(cancel_event.wait())
        try:
            await asyncio.wait({sleeper, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for pending in (sleeper, waiter):
                pending.cancel()

    def _release(self, groups: list[list[Task]]) -> int:
        released = 0
        for group in groups:
            for task in group:
                try:
                    self.store.unqueue(task.id)
                    released += 1
                except (TaskNotFoundError, InvalidTransitionError):
                    pass
        return released
