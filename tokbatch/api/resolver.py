"""
Resolves source links into video metadata through the upstream resolution service.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable
from urllib.parse import urlencode, urlparse

from tokbatch.exceptions import (
    AllRelaysExhaustedError,
    RateLimitedError,
    ResolutionFailedError,
)
from tokbatch.models.config import DEFAULT_RESOLVE_ENDPOINT
from tokbatch.models.task import VideoMetadata

from .relay import FetchKind, RelayFetcher

log = logging.getLogger(__name__)

GENERIC_FAILURE = "Video data not found. Link might be invalid."


def _mentions_limit(message: Any) -> bool:
    return isinstance(message, str) and "limit" in message.lower()


class Resolver:
    """
    Turns a source link into `VideoMetadata`.

    Rate-limit responses are the only retried failure: each retry waits
    `base_delay + attempt * step_delay` seconds, up to `max_retries` times.
    """

    def __init__(
        self,
        fetcher: RelayFetcher,
        endpoint: str = DEFAULT_RESOLVE_ENDPOINT,
        max_retries: int = 3,
        base_delay: float = 2.0,
        step_delay: float = 1.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.fetcher = fetcher
        self.endpoint = endpoint
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.step_delay = step_delay
        self._sleep = sleep

    def build_request_url(self, source_url: str) -> str:
        return f"{self.endpoint}?{urlencode({'url': source_url})}"

    async def resolve(self, source_url: str, attempt: int = 0) -> VideoMetadata:
        """
        Resolves `source_url`, retrying while the service reports a rate limit.

        Raises:
            ResolutionFailedError: For any terminal failure, including a rate limit
                that outlasts the retry budget.
        """
        while True:
            try:
                return await self._resolve_once(source_url)
            except RateLimitedError as e:
                if attempt >= self.max_retries:
                    log.error(
                        f"[red]Rate limit persisted after {attempt} retries for {source_url}[/red]"
                    )
                    raise ResolutionFailedError(str(e)) from e
                delay = self.base_delay + attempt * self.step_delay
                log.warning(
                    f"[yellow]Rate limit hit. Retrying in {delay:.1f}s... "
                    f"(Attempt {attempt + 1})[/yellow]"
                )
                await self._sleep(delay)
                attempt += 1

    async def _resolve_once(self, source_url: str) -> VideoMetadata:
        parsed = urlparse(source_url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ResolutionFailedError(f"Invalid link: {source_url}")

        try:
            data = await self.fetcher.fetch(
                self.build_request_url(source_url), FetchKind.METADATA
            )
        except AllRelaysExhaustedError as e:
            if _mentions_limit(str(e)):
                raise RateLimitedError(str(e)) from e
            raise ResolutionFailedError(str(e) or GENERIC_FAILURE) from e

        if not isinstance(data, dict):
            raise ResolutionFailedError(GENERIC_FAILURE)

        body = data.get("data")
        if data.get("code") == 0 and body and isinstance(body, dict):
            return _to_metadata(body)

        message = data.get("msg")
        if _mentions_limit(message):
            raise RateLimitedError(message)
        raise ResolutionFailedError(message if isinstance(message, str) and message else "Video not found")


def _to_metadata(body: dict[str, Any]) -> VideoMetadata:
    """Maps the provider's data envelope onto VideoMetadata."""
    fetch_url = body.get("play")
    if not fetch_url or not isinstance(fetch_url, str):
        raise ResolutionFailedError("Resolved video has no playable URL.")

    size = body.get("size")
    return VideoMetadata(
        title=body.get("title") or f"tiktok_video_{body.get('id')}",
        fetch_url=fetch_url,
        thumbnail_url=body.get("cover"),
        size=size if isinstance(size, int) else None,
    )
