"""HTTP retrieval of feed documents."""

import asyncio
from typing import Optional

import aiohttp
import structlog

from feed_relay.exceptions import FetchError

logger = structlog.get_logger(__name__)

ACCEPT_HEADER = (
    "application/rss+xml, application/atom+xml, application/rdf+xml, "
    "application/xml;q=0.9, text/xml;q=0.9, */*;q=0.5"
)
CHUNK_SIZE = 64 * 1024


class FeedFetcher:
    """Fetch raw feed documents over HTTP."""

    def __init__(
        self,
        timeout: float = 30.0,
        user_agent: str = "FeedRelay/1.0",
        max_bytes: int = 5 * 1024 * 1024,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        """Initialize the fetcher.

        Args:
            timeout: Total request timeout in seconds
            user_agent: User-Agent header value
            max_bytes: Largest accepted document size
            session: Optional pre-built client session
        """
        self.timeout = timeout
        self.user_agent = user_agent
        self.max_bytes = max_bytes
        self.session = session
        self._owns_session = session is None

    async def _init_session(self):
        """Initialize aiohttp session with proper headers."""
        if self.session is None:
            headers = {"User-Agent": self.user_agent, "Accept": ACCEPT_HEADER}
            self.session = aiohttp.ClientSession(
                headers=headers, timeout=aiohttp.ClientTimeout(total=self.timeout)
            )

    async def fetch(self, url: str) -> bytes:
        """Fetch the document at url.

        Args:
            url: Feed URL

        Returns:
            Raw response body

        Raises:
            FetchError: On any non-success outcome
        """
        await self._init_session()
        try:
            async with self.session.get(url) as response:
                if not 200 <= response.status < 300:
                    raise FetchError(
                        f"Unexpected HTTP status {response.status}",
                        details={"url": url, "status": response.status},
                    )
                body = await self._read_body(url, response)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise FetchError(
                f"Failed to fetch feed: {str(e) or type(e).__name__}", details={"url": url}
            ) from e

        logger.debug("feed_fetched", url=url, size=len(body))
        return body

    def _too_large(self, url: str, size: int) -> FetchError:
        return FetchError(
            "Feed document too large", details={"url": url, "size": size, "limit": self.max_bytes}
        )

    async def _read_body(self, url: str, response: aiohttp.ClientResponse) -> bytes:
        """Read the response body, stopping as soon as it exceeds max_bytes."""
        if response.content_length is not None and response.content_length > self.max_bytes:
            raise self._too_large(url, response.content_length)

        body = bytearray()
        async for chunk in response.content.iter_chunked(CHUNK_SIZE):
            body.extend(chunk)
            if len(body) > self.max_bytes:
                raise self._too_large(url, len(body))
        return bytes(body)

    async def close(self):
        """Close the underlying session if this fetcher created it."""
        if self.session is not None and self._owns_session:
            await self.session.close()
            self.session = None
