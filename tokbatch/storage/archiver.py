"""
Packs the binary payloads of resolved tasks into a single zip archive.
"""

import asyncio
import io
import logging
import zipfile
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import aiofiles

from tokbatch.api.relay import FetchKind, RelayFetcher
from tokbatch.exceptions import ArchiveError
from tokbatch.models.stats import BatchStats
from tokbatch.models.task import Task
from tokbatch.utils.path import create_dir, safe_title

log = logging.getLogger(__name__)

ARCHIVE_FOLDER = "TikTok_Batch_Download"


@dataclass(frozen=True)
class ArchiveEntry:
    """One file inside the archive: a video or a placeholder explaining a failure."""

    task_id: str
    name: str
    data: bytes
    is_placeholder: bool = False


class Archiver:
    """
    Downloads completed tasks in groups of `group_size` and zips the results.

    A failed download becomes a small text placeholder, so the archive always holds
    exactly one entry per input task.
    """

    def __init__(
        self,
        fetcher: RelayFetcher,
        group_size: int = 3,
        folder_name: str = ARCHIVE_FOLDER,
    ):
        if group_size < 1:
            raise ValueError("Group size must be at least 1.")
        self.fetcher = fetcher
        self.group_size = group_size
        self.folder_name = folder_name

    async def run(
        self, tasks: Iterable[Task], stats: Optional[BatchStats] = None
    ) -> Optional[bytes]:
        """
        Returns the zip archive as bytes, or None when there is nothing to pack.

        Raises:
            ArchiveError: If the archive itself cannot be assembled.
        """
        tasks = list(tasks)
        if not tasks:
            log.info("No completed videos to archive.")
            return None

        entries: list[ArchiveEntry] = []
        for i in range(0, len(tasks), self.group_size):
            group = tasks[i : i + self.group_size]
            entries.extend(await asyncio.gather(*(self._fetch_entry(t) for t in group)))
            log.debug(f"Archived {len(entries)}/{len(tasks)} videos.")

        entries = _dedupe_names(entries)
        blob = await asyncio.to_thread(self._pack, entries)

        if stats is not None:
            stats.placeholders += sum(1 for e in entries if e.is_placeholder)
            stats.archived += sum(1 for e in entries if not e.is_placeholder)
            stats.archive_size += len(blob)
        return blob

    async def _fetch_entry(self, task: Task) -> ArchiveEntry:
        name = safe_title(task.title, task.id)
        try:
            if not task.fetch_url:
                raise ValueError("Task has no resolved video URL.")
            data = await self.fetcher.fetch(task.fetch_url, FetchKind.BINARY)
            return ArchiveEntry(task.id, f"{name}.mp4", data)
        except Exception as e:
            log.error(f"[red]✗ Failed to download content for '{task.title or task.id}': {e}[/red]")
            message = (
                f"Failed to download: {task.source_url}\n"
                f"Error: Could not fetch video data via relays ({e})."
            )
            return ArchiveEntry(
                task.id, f"{name}_error.txt", message.encode("utf-8"), is_placeholder=True
            )

    def _pack(self, entries: list[ArchiveEntry]) -> bytes:
        buffer = io.BytesIO()
        try:
            with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as zf:
                for entry in entries:
                    zf.writestr(f"{self.folder_name}/{entry.name}", entry.data)
        except (zipfile.BadZipFile, OSError, ValueError) as e:
            raise ArchiveError(f"Could not create the zip archive: {e}") from e
        return buffer.getvalue()

    async def save(self, blob: bytes, destination: Path) -> Path:
        """Writes an archive blob to disk."""
        try:
            create_dir(destination.parent)
            async with aiofiles.open(destination, "wb") as f:
                await f.write(blob)
        except OSError as e:
            raise ArchiveError(f"Could not write archive to '{destination}': {e}") from e
        log.info(f"Archive saved to [cyan]{destination}[/cyan]")
        return destination


def _dedupe_names(entries: list[ArchiveEntry]) -> list[ArchiveEntry]:
    """Suffixes clashing entry names with the task id so no entry overwrites another."""
    seen: set[str] = set()
    result = []
    for entry in entries:
        name = entry.name
        if name in seen:
            stem, dot, ext = name.rpartition(".")
            name = f"{stem}_{entry.task_id}{dot}{ext}"
            counter = 2
            while name in seen:
                name = f"{stem}_{entry.task_id}_{counter}{dot}{ext}"
                counter += 1
            entry = ArchiveEntry(entry.task_id, name, entry.data, entry.is_placeholder)
        seen.add(name)
        result.append(entry)
    return result
