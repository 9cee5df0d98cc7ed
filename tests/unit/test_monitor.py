"""Tests for the feed monitor facade."""

import asyncio
import json

import pytest
import pytest_asyncio

from feed_relay.config import MonitorConfig
from feed_relay.exceptions import (
    AlreadyExistsError,
    InvalidFeedError,
    InvalidIntervalError,
    InvalidURLError,
    NotFoundError,
    SnapshotLockedError,
)
from feed_relay.monitor import FeedMonitor, validate_feed_url
from feed_relay.poller import CheckStatus

DESTINATION = "news-channel"
URL = "https://example.com/feed.xml"
OTHER_URL = "https://other.example.com/rss"


@pytest.fixture
def config(snapshot_path):
    return MonitorConfig(
        snapshot_path=str(snapshot_path),
        min_interval=0.01,
        default_interval=300.0,
        shutdown_grace=1.0,
    )


@pytest.fixture
def make_monitor(config, fake_fetcher, recording_channel, no_sleep):
    def factory():
        return FeedMonitor(
            config, channel=recording_channel, fetcher=fake_fetcher, sleep=no_sleep
        )

    return factory


@pytest_asyncio.fixture
async def monitor(make_monitor, fake_fetcher, rss_document):
    fake_fetcher.documents[URL] = rss_document(["A"])
    fake_fetcher.documents[OTHER_URL] = rss_document(["X"], title="Another Feed")
    monitor = make_monitor()
    yield monitor
    await monitor.stop()


@pytest.mark.parametrize(
    "url", ["", "not a url", "ftp://example.com/feed.xml", "https://", "mailto:me@example.com"]
)
def test_validate_feed_url_rejects(url):
    with pytest.raises(InvalidURLError):
        validate_feed_url(url)


def test_validate_feed_url_strips_whitespace():
    assert validate_feed_url("  https://example.com/rss ") == "https://example.com/rss"


@pytest.mark.asyncio
async def test_add_feed_runs_validation_poll(monitor, fake_fetcher):
    entry = await monitor.add_feed(DESTINATION, URL)

    assert entry.title == "Example Feed"
    assert entry.description == "Example feed description"
    assert entry.interval == 300.0
    assert entry.watermark is None
    assert fake_fetcher.calls == [URL]


@pytest.mark.asyncio
async def test_add_feed_rejects_bad_url_without_fetching(monitor, fake_fetcher):
    with pytest.raises(InvalidURLError):
        await monitor.add_feed(DESTINATION, "ftp://example.com/feed.xml")

    assert fake_fetcher.calls == []
    assert monitor.list_feeds(DESTINATION) == []


@pytest.mark.parametrize("interval", [0.001, 100000.0])
@pytest.mark.asyncio
async def test_add_feed_rejects_interval_out_of_bounds(monitor, interval):
    with pytest.raises(InvalidIntervalError):
        await monitor.add_feed(DESTINATION, URL, interval)


@pytest.mark.asyncio
async def test_add_feed_with_unreachable_url(monitor):
    with pytest.raises(InvalidFeedError):
        await monitor.add_feed(DESTINATION, "https://missing.example.com/rss")

    assert monitor.list_feeds(DESTINATION) == []


@pytest.mark.asyncio
async def test_add_feed_with_non_feed_document(monitor, fake_fetcher):
    fake_fetcher.documents["https://example.com/page"] = b"<html><body>Hi</body></html>"

    with pytest.raises(InvalidFeedError):
        await monitor.add_feed(DESTINATION, "https://example.com/page")


@pytest.mark.asyncio
async def test_duplicate_add(monitor):
    await monitor.add_feed(DESTINATION, URL)

    with pytest.raises(AlreadyExistsError):
        await monitor.add_feed(DESTINATION, URL)


@pytest.mark.asyncio
async def test_add_and_remove_while_running_update_schedule(monitor):
    await monitor.start()

    entry = await monitor.add_feed(DESTINATION, URL, 60.0)
    assert monitor.scheduler.is_scheduled(entry.key)
    assert monitor.scheduler.interval_of(entry.key) == 60.0

    await monitor.remove_feed(DESTINATION, URL)
    assert not monitor.scheduler.is_scheduled(entry.key)
    assert monitor.statistics()["active_schedules"] == 0


@pytest.mark.asyncio
async def test_add_while_stopped_does_not_schedule(monitor):
    entry = await monitor.add_feed(DESTINATION, URL)

    assert not monitor.scheduler.is_scheduled(entry.key)


@pytest.mark.asyncio
async def test_remove_unknown_feed(monitor):
    with pytest.raises(NotFoundError):
        await monitor.remove_feed(DESTINATION, URL)


@pytest.mark.asyncio
async def test_start_schedules_only_active_feeds(monitor, make_monitor):
    await monitor.add_feed(DESTINATION, URL)
    await monitor.add_feed(DESTINATION, OTHER_URL)
    await monitor.set_active(DESTINATION, OTHER_URL, False)

    restarted = make_monitor()
    await restarted.start()
    try:
        assert restarted.scheduler.scheduled_keys() == [(DESTINATION, URL)]
        assert restarted.statistics() == {
            "total_feeds": 2,
            "total_destinations": 1,
            "active_schedules": 1,
            "active_feeds": 1,
        }
    finally:
        await restarted.stop()


@pytest.mark.asyncio
async def test_pause_and_resume_while_running(monitor):
    await monitor.start()
    entry = await monitor.add_feed(DESTINATION, URL)

    paused = await monitor.set_active(DESTINATION, URL, False)
    assert paused.active is False
    assert not monitor.scheduler.is_scheduled(entry.key)

    await monitor.set_active(DESTINATION, URL, True)
    assert monitor.scheduler.is_scheduled(entry.key)


@pytest.mark.asyncio
async def test_set_interval_reschedules(monitor):
    await monitor.start()
    entry = await monitor.add_feed(DESTINATION, URL)

    updated = await monitor.set_interval(DESTINATION, URL, 120.0)

    assert updated.interval == 120.0
    assert monitor.scheduler.interval_of(entry.key) == 120.0
    with pytest.raises(InvalidIntervalError):
        await monitor.set_interval(DESTINATION, URL, 0)


@pytest.mark.asyncio
async def test_check_now(monitor, fake_fetcher, recording_channel, rss_document):
    with pytest.raises(NotFoundError):
        await monitor.check_now(DESTINATION, URL)

    await monitor.add_feed(DESTINATION, URL)
    baseline = await monitor.check_now(DESTINATION, URL)
    assert baseline.status == CheckStatus.BASELINE

    fake_fetcher.documents[URL] = rss_document(["C", "B", "A"])
    result = await monitor.check_now(DESTINATION, URL)

    assert result.status == CheckStatus.DELIVERED
    assert recording_channel.titles == ["Item B", "Item C"]


@pytest.mark.asyncio
async def test_scheduled_checks_deliver_new_items(
    monitor, fake_fetcher, recording_channel, rss_document
):
    await monitor.start()
    await monitor.add_feed(DESTINATION, URL, 0.05)

    await asyncio.sleep(0.08)
    assert monitor.registry.get(DESTINATION, URL).watermark == "A"

    fake_fetcher.documents[URL] = rss_document(["B", "A"])
    await asyncio.sleep(0.1)

    assert recording_channel.titles == ["Item B"]


@pytest.mark.asyncio
async def test_list_feeds_sorted_by_title(monitor, fake_fetcher, rss_document):
    fake_fetcher.documents["https://zeta.example.com/rss"] = rss_document(["Z"], title="zeta")
    await monitor.add_feed(DESTINATION, "https://zeta.example.com/rss")
    await monitor.add_feed(DESTINATION, URL)
    await monitor.add_feed(DESTINATION, OTHER_URL)

    titles = [entry.title for entry in monitor.list_feeds(DESTINATION)]

    assert titles == ["Another Feed", "Example Feed", "zeta"]
    assert monitor.list_feeds("empty-channel") == []


@pytest.mark.asyncio
async def test_stop_saves_registry(monitor, snapshot_path):
    await monitor.start()
    await monitor.add_feed(DESTINATION, URL)
    await monitor.check_now(DESTINATION, URL)
    await monitor.stop()

    stored = json.loads(snapshot_path.read_text())
    assert stored[DESTINATION][URL]["watermark"] == "A"
    assert stored[DESTINATION][URL]["last_checked"] is not None
    assert monitor.scheduler.active_count == 0


@pytest.mark.asyncio
async def test_context_manager_starts_and_stops(make_monitor):
    async with make_monitor() as running:
        assert running.running is True

    assert running.running is False


@pytest.mark.asyncio
async def test_second_monitor_cannot_claim_snapshot(monitor, make_monitor):
    await monitor.start()
    other = make_monitor()

    with pytest.raises(SnapshotLockedError):
        await other.load()

    await monitor.stop()
    try:
        assert await other.load() == 0
    finally:
        await other.stop()


@pytest.mark.asyncio
async def test_feed_removed_during_add_is_not_scheduled(monitor, monkeypatch):
    await monitor.start()
    original_add = monitor.registry.add

    async def add_then_remove(destination, url, interval=None):
        entry = await original_add(destination, url, interval)
        await monitor.registry.remove(destination, url)
        return entry

    monkeypatch.setattr(monitor.registry, "add", add_then_remove)

    entry = await monitor.add_feed(DESTINATION, URL)

    assert not monitor.scheduler.is_scheduled(entry.key)
    assert monitor.scheduler.active_count == 0
