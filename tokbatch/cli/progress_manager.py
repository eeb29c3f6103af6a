"""
Manages a Rich Live display of every task in the store and its current state.
"""

import asyncio
import logging
from datetime import datetime
from typing import Callable

from rich.console import Console, Group
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from tokbatch.models.task import Task, TaskStatus
from tokbatch.storage.task_store import TaskStore
from tokbatch.utils.formatting import shorten

log = logging.getLogger("tokbatch")

STATUS_STYLES = {
    TaskStatus.IDLE: ("○ Idle", "dim"),
    TaskStatus.QUEUED: ("… Queued", "cyan"),
    TaskStatus.RESOLVING: ("⟳ Resolving", "yellow"),
    TaskStatus.COMPLETED: ("✓ Ready", "green"),
    TaskStatus.FAILED: ("✗ Failed", "red"),
}


class ProgressManager:
    """
    Subscribes to a TaskStore and redraws a table of tasks whenever one changes.

    With `quiet=True` nothing is drawn; only failures are reported through logging.
    """

    def __init__(self, console: Console, store: TaskStore, quiet: bool = False):
        self.console = console
        self.store = store
        self.quiet = quiet
        self._live: Live | None = None
        self._unsubscribe: Callable[[], None] | None = None
        self._rows: dict[str, Task] = {}
        self._start_time: datetime | None = None

    def _on_change(self, event: str, task: Task) -> None:
        if event == "removed":
            self._rows.pop(task.id, None)
        else:
            self._rows[task.id] = task
        self._update_display()

    def _generate_header(self) -> Text:
        elapsed = 0.0
        if self._start_time:
            elapsed = (datetime.now() - self._start_time).total_seconds()
        counts = {status: 0 for status in TaskStatus}
        for task in self._rows.values():
            counts[task.status] += 1
        header = Text()
        header.append("🎬 TokBatch ", style="bold cyan")
        header.append("│ ", style="dim")
        header.append(f"{int(elapsed // 60):02d}:{int(elapsed % 60):02d}", style="yellow")
        header.append(" │ ", style="dim")
        header.append(f"{counts[TaskStatus.COMPLETED]} ready", style="green")
        header.append(" · ", style="dim")
        header.append(f"{counts[TaskStatus.FAILED]} failed", style="red")
        header.append(" · ", style="dim")
        pending = counts[TaskStatus.IDLE] + counts[TaskStatus.QUEUED]
        header.append(f"{pending} pending", style="cyan")
        return header

    def _generate_table(self) -> Table:
        width = max(20, self.console.width - 40)
        table = Table(box=None, padding=(0, 1), expand=True)
        table.add_column("Status", no_wrap=True, width=12)
        table.add_column("Link / Title", overflow="ellipsis")
        table.add_column("%", justify="right", width=4)
        for task in self._rows.values():
            label, style = STATUS_STYLES[task.status]
            if task.status == TaskStatus.FAILED and task.error_message:
                detail = Text(shorten(task.source_url, width // 2))
                detail.append(f" ({shorten(task.error_message, width // 2)})", style="dim")
            else:
                detail = Text(shorten(task.title or task.source_url, width))
            table.add_row(Text(label, style=style), detail, str(task.progress))
        return table

    def render(self) -> Panel:
        if not self._rows:
            body = Text("No links queued.", style="dim italic", justify="center")
        else:
            body = self._generate_table()
        return Panel(
            Group(self._generate_header(), body),
            title="[bold]📥 Links[/bold]",
            border_style="cyan",
        )

    def _update_display(self) -> None:
        if self._live is not None:
            self._live.update(self.render())

    async def __aenter__(self) -> "ProgressManager":
        self._rows = {task.id: task for task in self.store.tasks()}
        self._start_time = datetime.now()
        self._unsubscribe = self.store.subscribe(self._on_change)
        if not self.quiet:
            self._live = Live(
                self.render(),
                console=self.console,
                refresh_per_second=8,
                vertical_overflow="visible",
            )
            self._live.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._unsubscribe:
            self._unsubscribe()
        if self._live:
            await asyncio.sleep(0.1)
            self._live.update(self.render())
            self._live.stop()
            self._live = None
