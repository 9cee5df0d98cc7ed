"""Per-feed check: fetch, detect new items, dispatch, record."""

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, List, Optional, Sequence

import structlog

from feed_relay.dispatcher import DispatchReport, Dispatcher
from feed_relay.exceptions import FetchError, ParseError
from feed_relay.fetching import FeedFetcher
from feed_relay.metrics import CHECK_DURATION, FEED_CHECKS
from feed_relay.parsing import FeedItem, FeedParser
from feed_relay.registry import FeedRegistry

logger = structlog.get_logger(__name__)


class CheckStatus(str, Enum):
    """Outcome of a feed check."""

    BASELINE = "baseline"
    DELIVERED = "delivered"
    UP_TO_DATE = "up_to_date"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class CheckResult:
    """Summary of one feed check."""

    destination: str
    url: str
    status: CheckStatus
    new_items: int = 0
    delivered: int = 0
    failed: int = 0
    watermark: Optional[str] = None
    error: Optional[str] = None


def select_new_items(
    items: Sequence[FeedItem], watermark: str, limit: int
) -> List[FeedItem]:
    """Return the items published after the watermark, oldest first.

    Items are scanned in provider order up to the one whose id matches the
    watermark. When no item matches, every item counts as new. Only the
    ``limit`` newest are kept; the rest are dropped for good.
    """
    unseen = []
    for item in items:
        if item.id == watermark:
            break
        unseen.append(item)
    else:
        if items:
            logger.warning("watermark_not_found", watermark=watermark, items=len(items))

    return list(reversed(unseen[:limit]))


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Poller:
    """Run the check cycle for a single feed."""

    def __init__(
        self,
        registry: FeedRegistry,
        fetcher: FeedFetcher,
        parser: FeedParser,
        dispatcher: Dispatcher,
        max_items: int = 5,
        clock: Callable[[], datetime] = utc_now,
    ):
        """Initialize the poller.

        Args:
            registry: Registry holding watermarks and check times
            fetcher: Fetcher used to download feed documents
            parser: Parser for downloaded documents
            dispatcher: Dispatcher receiving new items
            max_items: Maximum number of items delivered per check
            clock: Source of check timestamps
        """
        self.registry = registry
        self.fetcher = fetcher
        self.parser = parser
        self.dispatcher = dispatcher
        self.max_items = max_items
        self._clock = clock

    async def check(self, destination: str, url: str) -> CheckResult:
        """Check one feed for new items and deliver them.

        Fetch and parse failures are logged and recorded as a completed
        attempt; they never propagate.
        """
        entry = self.registry.get(destination, url)
        if entry is None or not entry.active:
            return CheckResult(destination, url, CheckStatus.SKIPPED)

        started = time.monotonic()
        log = logger.bind(destination=destination, url=url)
        log.debug("feed_check_started", title=entry.title)

        try:
            document = await self.fetcher.fetch(url)
            feed = await asyncio.to_thread(self.parser.parse, document, url)
        except (FetchError, ParseError) as e:
            log.warning("feed_check_failed", error=e.message, category=e.category.value)
            await self.registry.record_check(destination, url, self._clock())
            FEED_CHECKS.labels(status=CheckStatus.FAILED.value).inc()
            CHECK_DURATION.observe(time.monotonic() - started)
            return CheckResult(
                destination, url, CheckStatus.FAILED, watermark=entry.watermark, error=e.message
            )

        newest = feed.newest
        new_watermark = newest.id if newest else None

        if entry.watermark is None:
            status = CheckStatus.BASELINE
            items: List[FeedItem] = []
            log.info("feed_baseline_recorded", watermark=new_watermark, items=len(feed.items))
        else:
            items = select_new_items(feed.items, entry.watermark, self.max_items)
            status = CheckStatus.DELIVERED if items else CheckStatus.UP_TO_DATE

        report = DispatchReport()
        if items:
            current = self.registry.get(destination, url)
            if current is None or not current.active:
                log.info("feed_dropped_during_check")
                return CheckResult(destination, url, CheckStatus.SKIPPED)

        try:
            if items:
                log.info("new_items_found", count=len(items))
                report = await self.dispatcher.send(destination, feed, items)
        finally:
            # an interrupted batch still advances the watermark, so it is never replayed
            await asyncio.shield(
                self.registry.record_check(
                    destination,
                    url,
                    self._clock(),
                    watermark=new_watermark,
                    title=feed.title,
                    description=feed.description,
                )
            )

        FEED_CHECKS.labels(status=status.value).inc()
        CHECK_DURATION.observe(time.monotonic() - started)
        return CheckResult(
            destination,
            url,
            status,
            new_items=len(items),
            delivered=len(report.delivered),
            failed=len(report.failed),
            watermark=new_watermark or entry.watermark,
        )
