"""
In-memory store of work items and the only place where their state changes.
"""

import logging
from collections.abc import Callable, Iterable
from dataclasses import replace

from tokbatch.exceptions import InvalidTransitionError, TaskNotFoundError
from tokbatch.models.task import Task, TaskStatus, VideoMetadata

log = logging.getLogger(__name__)

TaskListener = Callable[[str, Task], None]

DEFAULT_FAILURE_REASON = "Failed to fetch."


class TaskStore:
    """
    Owns every Task record for the lifetime of the process.

    Callers only ever receive copies. Each transition method is a single synchronous
    step, so under the event loop no other coroutine can observe a half-applied change.
    Listeners registered with `subscribe` are called after every change with an event
    name ("added", "updated" or "removed") and a copy of the affected task.
    """

    def __init__(self):
        self._tasks: dict[str, Task] = {}
        self._listeners: list[TaskListener] = []

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, task_id: str) -> bool:
        return task_id in self._tasks

    # Observation

    def subscribe(self, listener: TaskListener) -> Callable[[], None]:
        """Registers a change listener and returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, event: str, task: Task) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, replace(task))
            except Exception as e:
                log.error(f"[red]Task listener failed on '{event}': {e}[/red]")

    def get(self, task_id: str) -> Task:
        return replace(self._require(task_id))

    def tasks(self, status: TaskStatus | None = None) -> list[Task]:
        """Returns copies of all tasks in insertion order, optionally filtered."""
        return [
            replace(t) for t in self._tasks.values() if status is None or t.status == status
        ]

    def pending(self) -> list[Task]:
        """Tasks eligible for a scheduling pass."""
        return [replace(t) for t in self._tasks.values() if t.is_pending]

    def counts(self) -> dict[TaskStatus, int]:
        result = dict.fromkeys(TaskStatus, 0)
        for task in self._tasks.values():
            result[task.status] += 1
        return result

    def all_completed(self) -> bool:
        return bool(self._tasks) and all(
            t.status == TaskStatus.COMPLETED for t in self._tasks.values()
        )

    # Creation and removal

    def enqueue(self, source_url: str) -> Task:
        task = Task(source_url=source_url)
        while task.id in self._tasks:
            task = Task(source_url=source_url)
        self._tasks[task.id] = task
        log.debug(f"Enqueued task {task.id} for {source_url}")
        self._notify("added", task)
        return replace(task)

    def enqueue_many(self, source_urls: Iterable[str]) -> list[Task]:
        return [self.enqueue(url) for url in source_urls]

    def remove(self, task_id: str) -> Task:
        task = self._tasks.pop(task_id, None)
        if task is None:
            raise TaskNotFoundError(f"No task with id '{task_id}'.")
        self._notify("removed", task)
        return replace(task)

    def clear_completed(self) -> int:
        """Removes every completed task and returns how many were removed."""
        done = [t.id for t in self._tasks.values() if t.status == TaskStatus.COMPLETED]
        for task_id in done:
            self.remove(task_id)
        return len(done)

    # Transitions

    def mark_queued(self, task_id: str) -> Task:
        task = self._transition(task_id, {TaskStatus.IDLE}, TaskStatus.QUEUED)
        return self._commit(task)

    def unqueue(self, task_id: str) -> Task:
        """Returns a queued task that was never started to Idle."""
        task = self._transition(task_id, {TaskStatus.QUEUED}, TaskStatus.IDLE)
        return self._commit(task)

    def mark_resolving(self, task_id: str) -> Task:
        task = self._transition(
            task_id,
            {TaskStatus.IDLE, TaskStatus.QUEUED, TaskStatus.FAILED},
            TaskStatus.RESOLVING,
        )
        task.progress = 20
        task.error_message = None
        return self._commit(task)

    def mark_completed(self, task_id: str, metadata: VideoMetadata) -> Task:
        task = self._transition(task_id, {TaskStatus.RESOLVING}, TaskStatus.COMPLETED)
        task.progress = 100
        task.title = metadata.title
        task.thumbnail_url = metadata.thumbnail_url
        task.fetch_url = metadata.fetch_url
        task.error_message = None
        return self._commit(task)

    def mark_failed(self, task_id: str, reason: str) -> Task:
        task = self._transition(task_id, {TaskStatus.RESOLVING}, TaskStatus.FAILED)
        task.progress = 0
        task.fetch_url = None
        task.error_message = reason or DEFAULT_FAILURE_REASON
        return self._commit(task)

    def reset_for_retry(self, task_id: str) -> Task:
        task = self._transition(task_id, {TaskStatus.FAILED}, TaskStatus.IDLE)
        task.progress = 0
        task.error_message = None
        return self._commit(task)

    def _require(self, task_id: str) -> Task:
        try:
            return self._tasks[task_id]
        except KeyError:
            raise TaskNotFoundError(f"No task with id '{task_id}'.") from None

    def _transition(
        self, task_id: str, allowed: set[TaskStatus], target: TaskStatus
    ) -> Task:
        """Returns a working copy moved to `target`, or raises if not allowed."""
        current = self._require(task_id)
        if current.status not in allowed:
            raise InvalidTransitionError(
                f"Task {task_id} cannot move from {current.status.value} to {target.value}."
            )
        return replace(current, status=target)

    def _commit(self, task: Task) -> Task:
        self._tasks[task.id] = task
        self._notify("updated", task)
        return replace(task)
