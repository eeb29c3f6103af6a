"""
Fetches JSON metadata or binary payloads through an ordered list of public relays.

The upstream hosts block direct access often enough that every request is routed
through a fixed sequence of relay transforms, falling back to a direct request last.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Sequence
from urllib.parse import quote, urlparse

import aiohttp
from rich.markup import escape

from tokbatch.exceptions import (
    AllRelaysExhaustedError,
    MalformedResponseError,
    TransformFailure,
)

log = logging.getLogger(__name__)

# Characters left unescaped by JavaScript's encodeURIComponent, which the relays expect.
_URI_COMPONENT_SAFE = "-_.!~*'()"


class FetchKind(Enum):
    """Selects the timeout and decoding path of a fetch."""

    METADATA = "metadata"
    BINARY = "binary"


@dataclass(frozen=True)
class RelayTransform:
    """
    Rewrites a target URL into a request against a relay host.

    A transform without a template is the identity transform (a direct request).
    """

    name: str
    template: Optional[str] = None

    def build(self, target_url: str) -> str:
        if self.template is None:
            return target_url
        return self.template.format(url=quote(target_url, safe=_URI_COMPONENT_SAFE))


DEFAULT_RELAYS: tuple[RelayTransform, ...] = (
    RelayTransform("corsproxy", "https://corsproxy.io/?{url}"),
    RelayTransform("allorigins-raw", "https://api.allorigins.win/raw?url={url}"),
    RelayTransform("codetabs", "https://api.codetabs.com/v1/proxy?quest={url}"),
    RelayTransform("direct"),
)

# Returns {"contents": "<body as a string>"}; only used for metadata.
WRAPPED_RELAY = RelayTransform("allorigins-get", "https://api.allorigins.win/get?url={url}")


class RelayFetcher:
    """
    Performs one logical fetch by trying each relay transform in order.

    The first payload that decodes wins. Failures of individual relays are logged at
    debug level and never reach the caller; only total exhaustion is reported.
    """

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        relays: Sequence[RelayTransform] = DEFAULT_RELAYS,
        wrapped_relay: Optional[RelayTransform] = WRAPPED_RELAY,
        metadata_timeout: float = 8.0,
        binary_timeout: float = 15.0,
    ):
        """
        Args:
            session: An existing session to issue requests with. When omitted the
                fetcher creates and owns one.
            relays: Ordered transforms; the identity transform belongs last.
            wrapped_relay: Extra metadata-only relay whose body wraps the payload.
            metadata_timeout: Per-attempt timeout for JSON metadata, in seconds.
            binary_timeout: Per-attempt timeout for binary payloads, in seconds.
        """
        if not relays:
            raise ValueError("At least one relay transform is required.")
        self.relays = tuple(relays)
        self.wrapped_relay = wrapped_relay
        self.timeouts = {
            FetchKind.METADATA: metadata_timeout,
            FetchKind.BINARY: binary_timeout,
        }
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Ensures an active aiohttp session is available."""
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(
                limit=16,
                ttl_dns_cache=300,
                enable_cleanup_closed=True,
            )
            self._session = aiohttp.ClientSession(
                connector=connector,
                headers={
                    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) Gecko/20100101 Firefox/121.0",
                    "Accept-Encoding": "gzip, deflate, br",
                },
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Closes the session if this fetcher created it."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self) -> "RelayFetcher":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def fetch(self, target_url: str, kind: FetchKind) -> Any:
        """
        Fetches `target_url` through the relays.

        Returns the decoded JSON value for METADATA and the raw bytes for BINARY.

        Raises:
            ValueError: If `target_url` is not an absolute http(s) URL.
            AllRelaysExhaustedError: If no relay produced a usable payload.
        """
        parsed = urlparse(target_url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"Not an absolute URL: {target_url!r}")

        session = await self._get_session()
        timeout = aiohttp.ClientTimeout(total=self.timeouts[kind])
        failures: list[str] = []

        for relay in self.relays:
            try:
                payload = await self._attempt(session, relay.build(target_url), kind, timeout)
                log.debug(f"Relay '{relay.name}' succeeded for {kind.value} fetch.")
                return payload
            except TransformFailure as e:
                failures.append(f"{relay.name}: {e}")
                log.debug(f"Relay '{relay.name}' failed: {e}")

        if kind is FetchKind.METADATA and self.wrapped_relay is not None:
            try:
                payload = await self._attempt_wrapped(session, target_url, timeout)
                log.debug(f"Wrapped relay '{self.wrapped_relay.name}' succeeded.")
                return payload
            except TransformFailure as e:
                failures.append(f"{self.wrapped_relay.name}: {e}")
                log.debug(f"Wrapped relay '{self.wrapped_relay.name}' failed: {e}")

        raise AllRelaysExhaustedError(
            f"All relays failed to fetch data (last error: {failures[-1]})",
            failures=failures,
        )

    async def _attempt(
        self,
        session: aiohttp.ClientSession,
        url: str,
        kind: FetchKind,
        timeout: aiohttp.ClientTimeout,
    ) -> Any:
        """
        Issues one request and decodes it, raising TransformFailure on any problem.

        Failure messages never quote the response body or the request URL: callers
        classify failures by their text, and both can echo the target link.
        """
        try:
            async with session.get(url, timeout=timeout) as r:
                if not 200 <= r.status < 300:
                    if kind is FetchKind.METADATA:
                        body = (await r.text(errors="replace"))[:200].strip()
                        log.debug(f"Relay body for HTTP {r.status}: {escape(body)}")
                    raise TransformFailure(_describe_status(r.status, r.reason))
                if kind is FetchKind.BINARY:
                    return await r.read()
                text = await r.text(errors="replace")
        except aiohttp.ClientResponseError as e:
            raise TransformFailure(_describe_status(e.status, e.message)) from e
        except aiohttp.InvalidURL as e:
            raise TransformFailure("InvalidURL") from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransformFailure(f"{type(e).__name__}: {e}") from e

        return _decode_json(text)

    async def _attempt_wrapped(
        self,
        session: aiohttp.ClientSession,
        target_url: str,
        timeout: aiohttp.ClientTimeout,
    ) -> Any:
        envelope = await self._attempt(
            session, self.wrapped_relay.build(target_url), FetchKind.METADATA, timeout
        )
        contents = envelope.get("contents") if isinstance(envelope, dict) else None
        if not isinstance(contents, str) or not contents:
            raise MalformedResponseError("Wrapped response has no 'contents' string.")
        return _decode_json(contents)


def _decode_json(text: str) -> Any:
    """Parses a relay body; HTML error pages from relays end up here as failures."""
    try:
        return json.loads(text)
    except ValueError as e:
        raise MalformedResponseError(f"Response is not valid JSON: {e}") from e


def _describe_status(status: int, reason: Optional[str]) -> str:
    """Summarizes a failed HTTP status; 429 is spelled out as a rate limit."""
    message = f"HTTP {status} {reason or ''}".strip()
    if status == 429:
        message += " (rate limit)"
    return message
