"""Per-feed recurring check scheduling."""

import asyncio
import math
from typing import Any, Awaitable, Callable, Dict, List, Optional

import structlog

from feed_relay.metrics import SCHEDULED_FEEDS, SKIPPED_TICKS
from feed_relay.registry import FeedEntry, FeedKey

logger = structlog.get_logger(__name__)

TickCallback = Callable[[str, str], Awaitable[Any]]


class Scheduler:
    """Own one recurring timer task per scheduled feed.

    Each timer fires every ``interval`` seconds and starts the check as a
    separate task. A tick that comes due while the previous check of the same
    feed is still running is skipped, so a feed is never checked concurrently
    with itself. Different feeds run independently.
    """

    def __init__(self, callback: TickCallback):
        """Initialize the scheduler.

        Args:
            callback: Coroutine run on every tick with (destination, url)
        """
        self._callback = callback
        self._timers: Dict[FeedKey, asyncio.Task] = {}
        self._intervals: Dict[FeedKey, float] = {}
        self._ticks: Dict[FeedKey, asyncio.Task] = {}
        self.skipped_ticks = 0

    @property
    def active_count(self) -> int:
        """Number of feeds currently scheduled."""
        return len(self._timers)

    def is_scheduled(self, key: FeedKey) -> bool:
        return key in self._timers

    def interval_of(self, key: FeedKey) -> Optional[float]:
        return self._intervals.get(key)

    def is_running(self, key: FeedKey) -> bool:
        """Return True while a check of the feed is executing."""
        tick = self._ticks.get(key)
        return tick is not None and not tick.done()

    def scheduled_keys(self) -> List[FeedKey]:
        return list(self._timers)

    def schedule(self, entry: FeedEntry) -> bool:
        """Start, restart or stop the timer of an entry.

        Any existing timer is replaced, so the first tick fires a full
        interval from now. Inactive entries end up unscheduled.

        Returns:
            True if the entry is now scheduled
        """
        self.unschedule(entry.key)
        if not entry.active:
            return False

        self._intervals[entry.key] = entry.interval
        self._timers[entry.key] = asyncio.create_task(
            self._run(entry.key, entry.interval),
            name=f"feed-timer:{entry.destination}:{entry.url}",
        )
        SCHEDULED_FEEDS.set(len(self._timers))
        logger.debug(
            "feed_scheduled",
            destination=entry.destination,
            url=entry.url,
            interval=entry.interval,
        )
        return True

    def unschedule(self, key: FeedKey) -> bool:
        """Cancel the timer of a feed.

        A check that is already running is left to finish.

        Returns:
            True if a timer was cancelled
        """
        timer = self._timers.pop(key, None)
        self._intervals.pop(key, None)
        if timer is None:
            return False

        timer.cancel()
        SCHEDULED_FEEDS.set(len(self._timers))
        logger.debug("feed_unscheduled", destination=key[0], url=key[1])
        return True

    async def run_now(self, destination: str, url: str) -> Any:
        """Run a check immediately, after any check of the feed in progress.

        Returns:
            Whatever the tick callback returns
        """
        key = (destination, url)
        while self.is_running(key):
            await asyncio.wait({self._ticks[key]})
        return await self._start_tick(key)

    async def shutdown(self, grace: float = 10.0) -> None:
        """Cancel every timer and give running checks ``grace`` seconds to end."""
        timers = list(self._timers.values())
        for key in list(self._timers):
            self.unschedule(key)
        if timers:
            await asyncio.gather(*timers, return_exceptions=True)

        running = [tick for tick in self._ticks.values() if not tick.done()]
        if not running:
            return

        logger.info("waiting_for_running_checks", count=len(running), grace=grace)
        _, pending = await asyncio.wait(running, timeout=grace)
        if pending:
            logger.warning("cancelling_running_checks", count=len(pending))
            for tick in pending:
                tick.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

    async def _run(self, key: FeedKey, interval: float) -> None:
        loop = asyncio.get_running_loop()
        next_fire = loop.time() + interval

        while True:
            await asyncio.sleep(max(0.0, next_fire - loop.time()))

            if self.is_running(key):
                self.skipped_ticks += 1
                SKIPPED_TICKS.inc()
                logger.warning("tick_skipped", destination=key[0], url=key[1])
            else:
                self._start_tick(key)

            next_fire += interval
            now = loop.time()
            if next_fire <= now:
                # the loop stalled past one or more periods
                next_fire += (math.floor((now - next_fire) / interval) + 1) * interval

    def _start_tick(self, key: FeedKey) -> asyncio.Task:
        tick = asyncio.create_task(self._tick(key), name=f"feed-check:{key[0]}:{key[1]}")
        self._ticks[key] = tick
        tick.add_done_callback(lambda task: self._forget_tick(key, task))
        return tick

    def _forget_tick(self, key: FeedKey, task: asyncio.Task) -> None:
        if self._ticks.get(key) is task:
            del self._ticks[key]

    async def _tick(self, key: FeedKey) -> Any:
        destination, url = key
        try:
            return await self._callback(destination, url)
        except Exception as e:
            logger.exception("tick_failed", destination=destination, url=url, error=str(e))
            return None
