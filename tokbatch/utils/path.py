"""
Utilities for handling file names, output paths, and source link extraction.
"""

import re
from collections.abc import Iterable
from pathlib import Path

from pathvalidate import sanitize_filename

MAX_TITLE_LENGTH = 50

_NON_ALNUM = re.compile(r"[^a-zA-Z0-9]")
_SEPARATORS = re.compile(r"\s+")


def safe_title(title: str | None, task_id: str) -> str:
    """
    Reduces a title to ASCII letters, digits and underscores, capped in length.
    Falls back to `video_<task_id>` when there is no title.
    """
    return _NON_ALNUM.sub("_", title or f"video_{task_id}")[:MAX_TITLE_LENGTH]


def extract_links(text: str, domain: str) -> list[str]:
    """
    Splits pasted text on whitespace and keeps the tokens that point at `domain`,
    without duplicates and in their original order.
    """
    domain = domain.lower()
    links = [tok for tok in _SEPARATORS.split(text) if tok and domain in tok.lower()]
    return list(dict.fromkeys(links))


def read_sources(sources: Iterable[str], domain: str) -> list[str]:
    """
    Expands a mix of links and paths to text files into a unique list of links.
    Lines in files starting with '#' are ignored.
    """
    collected: list[str] = []
    for source in sources:
        path = Path(source)
        if path.is_file():
            with open(path, "r", encoding="utf-8") as f:
                text = "\n".join(line for line in f if not line.lstrip().startswith("#"))
            collected.extend(extract_links(text, domain))
        else:
            collected.extend(extract_links(source, domain))
    return list(dict.fromkeys(collected))


def create_dir(directory_path: Path) -> None:
    """Creates a directory if it does not already exist."""
    directory_path.mkdir(parents=True, exist_ok=True)


def archive_destination(output_dir: str, archive_name: str) -> Path:
    """Builds the path the archive is written to, with a file-system safe name."""
    return Path(output_dir).expanduser() / sanitize_filename(archive_name)
