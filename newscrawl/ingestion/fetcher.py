"""
Feed Fetcher
============

Downloads a feed document over HTTP with a bounded timeout and a
descriptive client identifier. No retries: a failed fetch is reported
to the caller and retry cadence is left to whoever schedules runs.
"""

import asyncio
import ssl
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Optional

import aiohttp
import certifi

from ..config.settings import get_settings, FetcherSettings
from ..utils.logging import get_logger_for_component
from ..utils.exceptions import FeedFetchError, FetchErrorCause


@dataclass
class FetchResponse:
    """Raw body of a successful fetch."""

    url: str
    status: int
    body: bytes
    content_type: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.body)


class FeedFetcher:
    """HTTP adapter for feed documents."""

    CHUNK_SIZE = 64 * 1024

    def __init__(self, settings: Optional[FetcherSettings] = None):
        """Initialize feed fetcher.

        Args:
            settings: Fetcher settings (default from config)
        """
        self.settings = settings or get_settings().fetcher
        self.timeout = self.settings.timeout_seconds
        self.logger = get_logger_for_component("fetcher")

        self.ssl_context = ssl.create_default_context(cafile=certifi.where())

    @property
    def headers(self) -> dict:
        return {
            "User-Agent": self.settings.user_agent,
            "Accept": self.settings.accept,
            "Accept-Encoding": "gzip, deflate",
        }

    @asynccontextmanager
    async def get_session(self, limit: int = 10):
        """Get configured aiohttp session."""
        connector = aiohttp.TCPConnector(
            ssl=self.ssl_context,
            limit=limit,
            limit_per_host=5,
        )
        timeout = aiohttp.ClientTimeout(total=self.timeout)

        async with aiohttp.ClientSession(
            connector=connector, timeout=timeout, headers=self.headers
        ) as session:
            yield session

    async def fetch(
        self, url: str, session: Optional[aiohttp.ClientSession] = None
    ) -> FetchResponse:
        """Fetch a feed document.

        Args:
            url: Feed URL
            session: Shared session; a private one is opened when omitted

        Returns:
            FetchResponse with the raw body

        Raises:
            FeedFetchError: On timeout, network failure or a non-2xx status
        """
        if session is None:
            async with self.get_session(limit=1) as own_session:
                return await self._fetch(url, own_session)
        return await self._fetch(url, session)

    async def _read_capped(self, url: str, response: aiohttp.ClientResponse) -> bytes:
        """Stream the body, giving up as soon as it passes max_body_bytes."""
        limit = self.settings.max_body_bytes

        def too_large() -> FeedFetchError:
            return FeedFetchError(
                f"Response body exceeds {limit} bytes",
                cause=FetchErrorCause.NETWORK,
                feed_url=url,
            )

        if response.content_length is not None and response.content_length > limit:
            raise too_large()

        body = bytearray()
        async for chunk in response.content.iter_chunked(self.CHUNK_SIZE):
            body.extend(chunk)
            if len(body) > limit:
                raise too_large()

        return bytes(body)

    async def _fetch(self, url: str, session: aiohttp.ClientSession) -> FetchResponse:
        self.logger.debug(f"Fetching feed: {url}")

        try:
            async with session.get(
                url,
                headers=self.headers,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                allow_redirects=True,
            ) as response:
                if not 200 <= response.status < 300:
                    raise FeedFetchError(
                        f"HTTP {response.status}: {response.reason}",
                        cause=FetchErrorCause.HTTP_STATUS,
                        status_code=response.status,
                        feed_url=url,
                    )

                body = await self._read_capped(url, response)

                return FetchResponse(
                    url=str(response.url),
                    status=response.status,
                    body=body,
                    content_type=response.headers.get("Content-Type"),
                )

        except asyncio.TimeoutError as e:
            raise FeedFetchError(
                f"Request timeout after {self.timeout}s",
                cause=FetchErrorCause.TIMEOUT,
                feed_url=url,
            ) from e

        except aiohttp.ClientError as e:
            raise FeedFetchError(
                f"Fetch error: {e}",
                cause=FetchErrorCause.NETWORK,
                feed_url=url,
            ) from e
