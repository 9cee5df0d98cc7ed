"""Tests for feed document retrieval."""

import asyncio
from contextlib import asynccontextmanager
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock

import aiohttp
import pytest

from feed_relay.exceptions import FetchError
from feed_relay.fetching import FeedFetcher

URL = "https://example.com/feed.xml"


def make_content(body):
    """Build a stand-in for a response body stream that records the chunks it hands out."""
    served = []

    async def iter_chunked(size):
        for start in range(0, len(body), size):
            chunk = body[start : start + size]
            served.append(chunk)
            yield chunk

    return SimpleNamespace(iter_chunked=Mock(side_effect=iter_chunked), served=served)


def make_session(status=200, body=b"<rss/>", error=None, content_length=None):
    """Build a stand-in for aiohttp.ClientSession.get()."""
    content = make_content(body)

    @asynccontextmanager
    async def get(url):
        if error is not None:
            raise error
        yield SimpleNamespace(status=status, content_length=content_length, content=content)

    session = Mock()
    session.get = Mock(side_effect=get)
    session.close = AsyncMock()
    session.content = content
    return session


@pytest.mark.asyncio
async def test_fetch_returns_body():
    session = make_session(body=b"<rss>ok</rss>")
    fetcher = FeedFetcher(session=session)

    assert await fetcher.fetch(URL) == b"<rss>ok</rss>"
    session.get.assert_called_once_with(URL)


@pytest.mark.asyncio
async def test_non_success_status_raises():
    fetcher = FeedFetcher(session=make_session(status=404))

    with pytest.raises(FetchError) as exc_info:
        await fetcher.fetch(URL)

    assert exc_info.value.details["status"] == 404


@pytest.mark.parametrize(
    "error",
    [aiohttp.ClientConnectionError("connection refused"), asyncio.TimeoutError()],
)
@pytest.mark.asyncio
async def test_transport_errors_raise_fetch_error(error):
    fetcher = FeedFetcher(session=make_session(error=error))

    with pytest.raises(FetchError) as exc_info:
        await fetcher.fetch(URL)

    assert exc_info.value.message.startswith("Failed to fetch feed")


@pytest.mark.asyncio
async def test_oversized_document_is_rejected():
    fetcher = FeedFetcher(max_bytes=10, session=make_session(body=b"x" * 11))

    with pytest.raises(FetchError) as exc_info:
        await fetcher.fetch(URL)

    assert exc_info.value.details["size"] == 11


@pytest.mark.asyncio
async def test_declared_oversized_document_is_not_read():
    session = make_session(body=b"x" * 1000, content_length=1000)
    fetcher = FeedFetcher(max_bytes=10, session=session)

    with pytest.raises(FetchError) as exc_info:
        await fetcher.fetch(URL)

    assert exc_info.value.details["size"] == 1000
    session.content.iter_chunked.assert_not_called()


@pytest.mark.asyncio
async def test_oversized_stream_stops_at_limit(monkeypatch):
    monkeypatch.setattr("feed_relay.fetching.fetcher.CHUNK_SIZE", 4)
    session = make_session(body=b"x" * 100)
    fetcher = FeedFetcher(max_bytes=10, session=session)

    with pytest.raises(FetchError) as exc_info:
        await fetcher.fetch(URL)

    assert exc_info.value.details["size"] == 12
    assert len(session.content.served) == 3


@pytest.mark.asyncio
async def test_close_leaves_borrowed_session_open():
    session = make_session()
    fetcher = FeedFetcher(session=session)

    await fetcher.close()

    session.close.assert_not_awaited()


@pytest.mark.asyncio
async def test_close_owned_session():
    fetcher = FeedFetcher()
    await fetcher._init_session()
    session = fetcher.session

    await fetcher.close()

    assert session.closed
    assert fetcher.session is None
