from typing import Dict, List, Union
from unittest.mock import AsyncMock

import pytest

from feed_relay.exceptions import DeliveryError, FetchError
from feed_relay.registry import FeedRegistry, JsonSnapshotStore


class FakeFetcher:
    """Fetcher serving canned documents or errors per URL."""

    def __init__(self):
        self.documents: Dict[str, Union[bytes, Exception]] = {}
        self.calls: List[str] = []

    async def fetch(self, url: str) -> bytes:
        self.calls.append(url)
        document = self.documents.get(url)
        if document is None:
            raise FetchError("Unexpected HTTP status 404", details={"url": url})
        if isinstance(document, Exception):
            raise document
        return document

    async def close(self):
        pass


class RecordingChannel:
    """Delivery channel that records messages and fails selected titles."""

    def __init__(self):
        self.deliveries = []
        self.fail_titles = set()

    async def deliver(self, destination, message):
        if message["title"] in self.fail_titles:
            raise DeliveryError("Webhook returned HTTP 500", status_code=500)
        self.deliveries.append((destination, message))

    @property
    def titles(self):
        return [message["title"] for _, message in self.deliveries]


def build_rss(ids, title="Example Feed", description="Example feed description"):
    """Build an RSS 2.0 document whose items are listed newest-first."""
    items = "".join(
        f"""
        <item>
            <title>Item {item_id}</title>
            <link>https://example.com/posts/{item_id}</link>
            <guid isPermaLink="false">{item_id}</guid>
            <description>Summary of {item_id}</description>
            <pubDate>Mon, 01 Jan 2024 12:00:00 GMT</pubDate>
        </item>"""
        for item_id in ids
    )
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
    <channel>
        <title>{title}</title>
        <link>https://example.com</link>
        <description>{description}</description>
        {items}
    </channel>
</rss>""".encode(
        "utf-8"
    )


@pytest.fixture(autouse=True)
def mock_env_vars(monkeypatch, tmp_path):
    """Point the environment configuration at a temporary snapshot."""
    monkeypatch.setenv("FEED_RELAY_SNAPSHOT", str(tmp_path / "feeds.json"))
    for name in (
        "FEED_RELAY_DEFAULT_INTERVAL",
        "FEED_RELAY_MAX_FEEDS",
        "FEED_RELAY_MAX_ITEMS",
        "FEED_RELAY_PACING",
        "FEED_RELAY_WEBHOOKS",
        "FEED_RELAY_WEBHOOK_TOKEN",
        "METRICS_PORT",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def rss_document():
    """Factory for RSS documents."""
    return build_rss


@pytest.fixture
def fake_fetcher():
    return FakeFetcher()


@pytest.fixture
def recording_channel():
    return RecordingChannel()


@pytest.fixture
def no_sleep():
    """Pacing coroutine that returns immediately."""
    return AsyncMock()


@pytest.fixture
def snapshot_path(tmp_path):
    return tmp_path / "feeds.json"


@pytest.fixture
def snapshot_store(snapshot_path):
    return JsonSnapshotStore(str(snapshot_path))


@pytest.fixture
def registry(snapshot_store):
    """Registry without a validation poll."""
    return FeedRegistry(snapshot_store, default_interval=300.0, max_feeds_per_destination=10)
