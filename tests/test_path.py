# tests/test_path.py

from __future__ import annotations

from pathlib import Path

from tokbatch.utils.path import archive_destination, extract_links, read_sources, safe_title


def test_extract_links_splits_filters_and_dedupes() -> None:
    text = """
    https://www.tiktok.com/@user/video/123456   https://vm.tiktok.com/AbCdEf/
    not-a-link https://youtube.com/watch?v=1
    https://www.tiktok.com/@user/video/123456
    """

    assert extract_links(text, "tiktok.com") == [
        "https://www.tiktok.com/@user/video/123456",
        "https://vm.tiktok.com/AbCdEf/",
    ]


def test_extract_links_domain_match_is_case_insensitive() -> None:
    assert extract_links("HTTPS://WWW.TIKTOK.COM/@u/video/1", "TikTok.com") == [
        "HTTPS://WWW.TIKTOK.COM/@u/video/1"
    ]


def test_safe_title() -> None:
    assert safe_title("Dance 💃 challenge!", "abc") == "Dance___challenge_"
    assert safe_title(None, "abc") == "video_abc"
    assert len(safe_title("a" * 120, "abc")) == 50


def test_read_sources_mixes_files_and_links(tmp_path: Path) -> None:
    links_file = tmp_path / "links.txt"
    links_file.write_text(
        "# saved for later\nhttps://www.tiktok.com/@u/video/2\n\nhttps://www.tiktok.com/@u/video/1\n",
        encoding="utf-8",
    )

    result = read_sources(
        ["https://www.tiktok.com/@u/video/1", str(links_file)], "tiktok.com"
    )

    assert result == [
        "https://www.tiktok.com/@u/video/1",
        "https://www.tiktok.com/@u/video/2",
    ]


def test_archive_destination_sanitizes_name(tmp_path: Path) -> None:
    dest = archive_destination(str(tmp_path), "my:batch?.zip")
    assert dest.parent == tmp_path
    assert ":" not in dest.name and "?" not in dest.name
