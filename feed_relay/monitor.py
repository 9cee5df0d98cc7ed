"""Feed monitoring engine: wiring, lifecycle and the operations it exposes."""

import asyncio
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional
from urllib.parse import urlparse

import structlog
from filelock import FileLock, Timeout

from feed_relay.config import MonitorConfig
from feed_relay.delivery import DeliveryChannel, WebhookChannel
from feed_relay.dispatcher import Dispatcher
from feed_relay.exceptions import (
    InvalidIntervalError,
    InvalidURLError,
    NotFoundError,
    SnapshotLockedError,
)
from feed_relay.fetching import FeedFetcher
from feed_relay.parsing import FeedParser, ParsedFeed
from feed_relay.poller import CheckResult, Poller
from feed_relay.registry import (
    FeedEntry,
    FeedKey,
    FeedRegistry,
    JsonSnapshotStore,
    SnapshotStore,
)
from feed_relay.scheduler import Scheduler

logger = structlog.get_logger(__name__)


def validate_feed_url(url: str) -> str:
    """Return the stripped URL if it is an absolute http(s) URL.

    Raises:
        InvalidURLError: If the URL is malformed or uses another scheme
    """
    url = (url or "").strip()
    try:
        result = urlparse(url)
    except ValueError as e:
        raise InvalidURLError(f"Invalid URL: {e}", details={"url": url}) from e
    if result.scheme not in ("http", "https") or not result.netloc:
        raise InvalidURLError("Please provide a valid http(s) feed URL", details={"url": url})
    return url


class FeedMonitor:
    """Monitor feeds on their own schedules and relay new items.

    The monitor owns one registry, one scheduler and the poller/dispatcher
    pair that runs on each tick. Feeds can be added and removed whether or not
    the monitor is running; schedules only exist while it runs.
    """

    def __init__(
        self,
        config: Optional[MonitorConfig] = None,
        channel: Optional[DeliveryChannel] = None,
        store: Optional[SnapshotStore] = None,
        fetcher: Optional[FeedFetcher] = None,
        parser: Optional[FeedParser] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize the monitor.

        Args:
            config: Monitor configuration, defaults to MonitorConfig()
            channel: Delivery channel, defaults to a webhook channel
            store: Snapshot store, defaults to a JSON file at config.snapshot_path
            fetcher: Feed fetcher, defaults to an aiohttp fetcher
            parser: Feed parser
            sleep: Coroutine used for delivery pacing
        """
        self.config = (config or MonitorConfig()).validate()
        self.fetcher = fetcher or FeedFetcher(
            timeout=self.config.fetch_timeout,
            user_agent=self.config.user_agent,
            max_bytes=self.config.max_document_bytes,
        )
        self.parser = parser or FeedParser()
        self.channel = channel or WebhookChannel(
            webhooks=self.config.webhooks, auth_token=self.config.webhook_auth_token
        )
        self.registry = FeedRegistry(
            store or JsonSnapshotStore(self.config.snapshot_path),
            default_interval=self.config.default_interval,
            max_feeds_per_destination=self.config.max_feeds_per_destination,
            validator=self._fetch_and_parse,
        )
        self.dispatcher = Dispatcher(self.channel, pacing=self.config.delivery_pacing, sleep=sleep)
        self.poller = Poller(
            self.registry,
            self.fetcher,
            self.parser,
            self.dispatcher,
            max_items=self.config.max_items_per_check,
        )
        self.scheduler = Scheduler(self.poller.check)
        self.running = False
        self._snapshot_lock = FileLock(f"{self.config.snapshot_path}.lock")

    async def __aenter__(self) -> "FeedMonitor":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()

    async def _fetch_and_parse(self, url: str) -> ParsedFeed:
        document = await self.fetcher.fetch(url)
        return await asyncio.to_thread(self.parser.parse, document, url)

    def _claim_snapshot(self) -> None:
        """Take exclusive ownership of the snapshot for this monitor."""
        if self._snapshot_lock.is_locked:
            return
        Path(self._snapshot_lock.lock_file).parent.mkdir(parents=True, exist_ok=True)
        try:
            self._snapshot_lock.acquire(timeout=0)
        except Timeout as e:
            raise SnapshotLockedError(
                "The feed snapshot is in use by another feed relay process",
                details={"path": self.config.snapshot_path},
            ) from e

    def _release_snapshot(self) -> None:
        if self._snapshot_lock.is_locked:
            self._snapshot_lock.release()

    async def load(self) -> int:
        """Claim the snapshot and load it without starting any schedule.

        Raises:
            SnapshotLockedError: If another monitor holds the snapshot
        """
        self._claim_snapshot()
        return await self.registry.load()

    async def start(self) -> None:
        """Load the registry and schedule every active feed."""
        if self.running:
            logger.warning("Feed monitor already running")
            return

        await self.load()
        self.running = True
        for entry in self.registry.entries():
            self.scheduler.schedule(entry)

        logger.info(
            "feed_monitor_started",
            feeds=len(self.registry),
            scheduled=self.scheduler.active_count,
        )

    async def stop(self) -> None:
        """Cancel schedules, let running checks finish, and save the registry."""
        was_running = self.running
        self.running = False
        await self.scheduler.shutdown(self.config.shutdown_grace)
        if was_running:
            await self.registry.save()
        await self.fetcher.close()
        self._release_snapshot()
        logger.info("feed_monitor_stopped")

    def _validate_interval(self, interval: Optional[float]) -> None:
        if interval is None:
            return
        if not self.config.min_interval <= interval <= self.config.max_interval:
            raise InvalidIntervalError(
                f"Interval must be between {self.config.min_interval:g} and "
                f"{self.config.max_interval:g} seconds",
                details={"interval": interval},
            )

    def _sync_schedule(self, key: FeedKey) -> None:
        """Align the timer of a feed with its current registry entry."""
        if not self.running:
            return
        entry = self.registry.get(*key)
        if entry is None or not entry.active:
            self.scheduler.unschedule(key)
        elif self.scheduler.interval_of(key) != entry.interval:
            self.scheduler.schedule(entry)

    async def add_feed(
        self, destination: str, url: str, interval: Optional[float] = None
    ) -> FeedEntry:
        """Register a feed for a destination and start checking it.

        Args:
            destination: Destination identifier
            url: Feed URL
            interval: Polling interval in seconds

        Returns:
            The new entry

        Raises:
            InvalidURLError: If the URL is not an http(s) URL
            InvalidIntervalError: If the interval is out of bounds
            AlreadyExistsError, LimitExceededError, InvalidFeedError: From the registry
        """
        url = validate_feed_url(url)
        self._validate_interval(interval)
        entry = await self.registry.add(destination, url, interval)
        self._sync_schedule(entry.key)
        return entry

    async def remove_feed(self, destination: str, url: str) -> FeedEntry:
        """Unregister a feed and stop checking it.

        Raises:
            NotFoundError: If the feed is not registered for the destination
        """
        entry = await self.registry.remove(destination, url.strip())
        self.scheduler.unschedule(entry.key)
        return entry

    def list_feeds(self, destination: str) -> List[FeedEntry]:
        """Return the feeds of a destination sorted by title."""
        return sorted(self.registry.list(destination), key=lambda e: (e.title.lower(), e.url))

    async def set_active(self, destination: str, url: str, active: bool) -> FeedEntry:
        """Pause or resume a feed."""
        entry = await self.registry.set_active(destination, url, active)
        self._sync_schedule(entry.key)
        logger.info("feed_active_changed", destination=destination, url=url, active=active)
        return entry

    async def set_interval(self, destination: str, url: str, interval: float) -> FeedEntry:
        """Change the polling interval of a feed and restart its timer."""
        self._validate_interval(interval)
        entry = await self.registry.set_interval(destination, url, interval)
        self._sync_schedule(entry.key)
        logger.info("feed_interval_changed", destination=destination, url=url, interval=interval)
        return entry

    async def check_now(self, destination: str, url: str) -> CheckResult:
        """Check a feed immediately, outside its schedule.

        Raises:
            NotFoundError: If the feed is not registered for the destination
        """
        if self.registry.get(destination, url) is None:
            raise NotFoundError(
                "Feed not found for this destination",
                details={"destination": destination, "url": url},
            )
        return await self.scheduler.run_now(destination, url)

    def statistics(self) -> Dict[str, Any]:
        """Return registry and scheduling counters."""
        entries = self.registry.entries()
        return {
            "total_feeds": len(entries),
            "total_destinations": len(self.registry.destinations()),
            "active_schedules": self.scheduler.active_count,
            "active_feeds": sum(1 for entry in entries if entry.active),
        }
