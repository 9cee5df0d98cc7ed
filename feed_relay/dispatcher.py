"""Paced, best-effort delivery of new feed items."""

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Sequence

import structlog

from feed_relay.delivery import DeliveryChannel, render_item
from feed_relay.exceptions import DeliveryError
from feed_relay.metrics import ITEM_DELIVERIES
from feed_relay.parsing import FeedItem, ParsedFeed

logger = structlog.get_logger(__name__)


@dataclass
class DispatchReport:
    """Outcome of delivering one batch."""

    delivered: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)

    @property
    def attempted(self) -> int:
        return len(self.delivered) + len(self.failed)


class Dispatcher:
    """Deliver items one at a time through a delivery channel."""

    def __init__(
        self,
        channel: DeliveryChannel,
        pacing: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize the dispatcher.

        Args:
            channel: Channel used for every delivery
            pacing: Seconds to wait between two deliveries of the same batch
            sleep: Coroutine used for pacing
        """
        self.channel = channel
        self.pacing = pacing
        self._sleep = sleep

    async def send(
        self, destination: str, feed: ParsedFeed, items: Sequence[FeedItem]
    ) -> DispatchReport:
        """Deliver items in the given order.

        A failed item is logged and skipped; the rest of the batch is still
        delivered and nothing is retried.

        Args:
            destination: Destination identifier
            feed: Feed the items come from
            items: Items to deliver, oldest first

        Returns:
            DispatchReport listing delivered and failed item ids
        """
        report = DispatchReport()

        for index, item in enumerate(items):
            if index > 0:
                await self._sleep(self.pacing)

            try:
                await self.channel.deliver(destination, render_item(feed, item))
            except DeliveryError as e:
                report.failed.append(item.id)
                ITEM_DELIVERIES.labels(status="failed").inc()
                logger.error(
                    "item_delivery_failed",
                    destination=destination,
                    feed=feed.title,
                    item_id=item.id,
                    status_code=e.status_code,
                    error=e.message,
                )
                continue
            except Exception as e:
                report.failed.append(item.id)
                ITEM_DELIVERIES.labels(status="failed").inc()
                logger.exception(
                    "item_delivery_error",
                    destination=destination,
                    feed=feed.title,
                    item_id=item.id,
                    error=str(e),
                )
                continue

            report.delivered.append(item.id)
            ITEM_DELIVERIES.labels(status="success").inc()
            logger.info(
                "item_delivered", destination=destination, feed=feed.title, title=item.title
            )

        return report
