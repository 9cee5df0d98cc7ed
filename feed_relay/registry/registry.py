"""Durable registry of monitored feeds."""

import asyncio
from datetime import datetime
from typing import Awaitable, Callable, Dict, List, Optional

import structlog
from pydantic import ValidationError

from feed_relay.exceptions import (
    AlreadyExistsError,
    FetchError,
    InvalidFeedError,
    LimitExceededError,
    NotFoundError,
    ParseError,
    PersistenceError,
)
from feed_relay.metrics import PERSISTENCE_FAILURES
from feed_relay.parsing import ParsedFeed
from feed_relay.registry.models import FeedEntry, FeedRecord
from feed_relay.registry.snapshot import Snapshot, SnapshotStore

logger = structlog.get_logger(__name__)

FeedValidator = Callable[[str], Awaitable[ParsedFeed]]


class FeedRegistry:
    """Registry of feeds keyed by (destination, url).

    Mutations are serialized through a single asyncio lock and every mutation
    rewrites the full snapshot. Reads never take the lock and hand out copies.
    """

    def __init__(
        self,
        store: SnapshotStore,
        default_interval: float = 300.0,
        max_feeds_per_destination: int = 10,
        validator: Optional[FeedValidator] = None,
    ):
        """Initialize the registry.

        Args:
            store: Snapshot store used by load and save
            default_interval: Interval in seconds for feeds added without one
            max_feeds_per_destination: Maximum number of feeds per destination
            validator: Coroutine that fetches and parses a URL when it is added
        """
        self.store = store
        self.default_interval = default_interval
        self.max_feeds_per_destination = max_feeds_per_destination
        self.validator = validator
        self.dirty = False
        self._feeds: Dict[str, Dict[str, FeedEntry]] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return sum(len(feeds) for feeds in self._feeds.values())

    def get(self, destination: str, url: str) -> Optional[FeedEntry]:
        """Return a copy of an entry, or None if it is not registered."""
        entry = self._feeds.get(destination, {}).get(url)
        return entry.copy() if entry else None

    def list(self, destination: str) -> List[FeedEntry]:
        """Return copies of all entries of a destination."""
        return [entry.copy() for entry in self._feeds.get(destination, {}).values()]

    def entries(self) -> List[FeedEntry]:
        """Return copies of every entry."""
        return [entry.copy() for feeds in self._feeds.values() for entry in feeds.values()]

    def destinations(self) -> List[str]:
        """Return every destination holding at least one feed."""
        return list(self._feeds)

    def _check_can_add(self, destination: str, url: str) -> None:
        feeds = self._feeds.get(destination, {})
        if url in feeds:
            raise AlreadyExistsError(
                "This feed is already registered for the destination",
                details={"destination": destination, "url": url},
            )
        if len(feeds) >= self.max_feeds_per_destination:
            raise LimitExceededError(
                f"Maximum number of feeds ({self.max_feeds_per_destination}) "
                "reached for this destination",
                details={"destination": destination, "limit": self.max_feeds_per_destination},
            )

    def _require(self, destination: str, url: str) -> FeedEntry:
        entry = self._feeds.get(destination, {}).get(url)
        if entry is None:
            raise NotFoundError(
                "Feed not found for this destination",
                details={"destination": destination, "url": url},
            )
        return entry

    async def add(
        self, destination: str, url: str, interval: Optional[float] = None
    ) -> FeedEntry:
        """Register a feed for a destination.

        Args:
            destination: Destination identifier
            url: Feed URL
            interval: Polling interval in seconds, defaults to the registry default

        Returns:
            Copy of the new entry

        Raises:
            AlreadyExistsError: If the feed is already registered for the destination
            LimitExceededError: If the destination is at capacity
            InvalidFeedError: If the validation poll fails
        """
        self._check_can_add(destination, url)

        feed = None
        if self.validator is not None:
            try:
                feed = await self.validator(url)
            except (FetchError, ParseError) as e:
                logger.warning("feed_validation_failed", url=url, error=e.message)
                raise InvalidFeedError(
                    f"Invalid feed: {e.message}", details={"url": url, **e.details}
                ) from e

        async with self._lock:
            # another add may have completed during the validation poll
            self._check_can_add(destination, url)
            entry = FeedEntry(
                destination=destination,
                url=url,
                interval=interval or self.default_interval,
            )
            if feed is not None:
                entry.title = feed.title
                entry.description = feed.description
            self._feeds.setdefault(destination, {})[url] = entry
            await self._persist()

        logger.info(
            "feed_added",
            destination=destination,
            url=url,
            title=entry.title,
            interval=entry.interval,
        )
        return entry.copy()

    async def remove(self, destination: str, url: str) -> FeedEntry:
        """Unregister a feed.

        Raises:
            NotFoundError: If the feed is not registered for the destination
        """
        async with self._lock:
            entry = self._require(destination, url)
            feeds = self._feeds[destination]
            del feeds[url]
            if not feeds:
                del self._feeds[destination]
            await self._persist()

        logger.info("feed_removed", destination=destination, url=url, title=entry.title)
        return entry

    async def set_active(self, destination: str, url: str, active: bool) -> FeedEntry:
        """Enable or disable scheduling of a feed.

        Raises:
            NotFoundError: If the feed is not registered for the destination
        """
        async with self._lock:
            entry = self._require(destination, url)
            entry.active = active
            await self._persist()
            return entry.copy()

    async def set_interval(self, destination: str, url: str, interval: float) -> FeedEntry:
        """Change the polling interval of a feed.

        Raises:
            NotFoundError: If the feed is not registered for the destination
        """
        async with self._lock:
            entry = self._require(destination, url)
            entry.interval = interval
            await self._persist()
            return entry.copy()

    async def record_check(
        self,
        destination: str,
        url: str,
        checked_at: datetime,
        watermark: Optional[str] = None,
        title: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Optional[FeedEntry]:
        """Store the outcome of a check.

        A missing entry means the feed was removed while it was being checked,
        in which case nothing happens. A None watermark keeps the current one.

        Returns:
            Copy of the updated entry, or None if the entry no longer exists
        """
        async with self._lock:
            entry = self._feeds.get(destination, {}).get(url)
            if entry is None:
                logger.debug("check_for_removed_feed", destination=destination, url=url)
                return None

            if entry.last_checked is None or checked_at > entry.last_checked:
                entry.last_checked = checked_at
            if watermark is not None:
                entry.watermark = watermark
            if title is not None:
                entry.title = title
            if description is not None:
                entry.description = description
            await self._persist()
            return entry.copy()

    async def load(self) -> int:
        """Replace the in-memory registry with the stored snapshot.

        A missing snapshot yields an empty registry. An unreadable snapshot is
        logged and also yields an empty registry.

        Returns:
            Number of entries loaded
        """
        try:
            snapshot = await asyncio.to_thread(self.store.load)
        except PersistenceError as e:
            logger.error("snapshot_load_failed", starting_empty=True, **e.to_dict())
            snapshot = None

        if snapshot is None:
            logger.info("no_snapshot_found")

        feeds: Dict[str, Dict[str, FeedEntry]] = {}
        for destination, records in (snapshot or {}).items():
            if not isinstance(records, dict):
                logger.error("snapshot_destination_invalid", destination=destination)
                continue
            for url, raw in records.items():
                if not isinstance(raw, dict):
                    logger.error("snapshot_record_invalid", destination=destination, url=url)
                    continue
                try:
                    record = FeedRecord.model_validate({"url": url, **raw})
                except ValidationError as e:
                    logger.error(
                        "snapshot_record_invalid",
                        destination=destination,
                        url=url,
                        error=str(e),
                    )
                    continue
                feeds.setdefault(destination, {})[record.url] = record.to_entry(
                    destination, self.default_interval
                )

        async with self._lock:
            self._feeds = feeds
            self.dirty = False

        logger.info("registry_loaded", feeds=len(self), destinations=len(self._feeds))
        return len(self)

    async def save(self) -> bool:
        """Write the full registry to the store.

        Returns:
            True if the snapshot was written
        """
        async with self._lock:
            return await self._persist()

    def to_snapshot(self) -> Snapshot:
        """Return the snapshot representation of the registry."""
        return {
            destination: {
                url: FeedRecord.from_entry(entry).to_json() for url, entry in feeds.items()
            }
            for destination, feeds in self._feeds.items()
        }

    async def _persist(self) -> bool:
        """Write the snapshot; must be called with the lock held."""
        snapshot = self.to_snapshot()
        try:
            await asyncio.to_thread(self.store.save, snapshot)
        except PersistenceError as e:
            # memory stays authoritative, the next mutation writes everything again
            self.dirty = True
            PERSISTENCE_FAILURES.inc()
            logger.error("snapshot_save_failed", **e.to_dict())
            return False

        self.dirty = False
        return True
