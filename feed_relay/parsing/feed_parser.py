"""Normalization of RSS/Atom documents into feed items."""

import calendar
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, List, Optional, Union

import feedparser
import structlog

from feed_relay.exceptions import ParseError

logger = structlog.get_logger(__name__)

UNKNOWN_FEED_TITLE = "Unknown Feed"


@dataclass
class FeedItem:
    """One entry of a parsed feed document."""

    id: str
    title: str = ""
    link: Optional[str] = None
    summary: str = ""
    published_at: Optional[datetime] = None
    author: Optional[str] = None
    media_url: Optional[str] = None


@dataclass
class ParsedFeed:
    """Normalized representation of a feed document.

    Items keep the provider's order, which is usually newest-first.
    """

    title: str = UNKNOWN_FEED_TITLE
    description: str = ""
    link: Optional[str] = None
    image_url: Optional[str] = None
    feed_type: Optional[str] = None
    items: List[FeedItem] = field(default_factory=list)

    @property
    def newest(self) -> Optional[FeedItem]:
        """Return the first item in provider order."""
        return self.items[0] if self.items else None


def _to_datetime(struct_time: Any) -> Optional[datetime]:
    if not struct_time:
        return None
    try:
        return datetime.fromtimestamp(calendar.timegm(struct_time), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError):
        return None


def _media_url(entry: Any) -> Optional[str]:
    for key in ("media_thumbnail", "media_content"):
        for media in entry.get(key) or []:
            if media.get("url"):
                return media["url"]
    for enclosure in entry.get("enclosures") or []:
        if enclosure.get("type", "").startswith("image/") and enclosure.get("href"):
            return enclosure["href"]
    return None


class FeedParser:
    """Parse raw RSS/Atom documents with feedparser."""

    def parse(self, document: Union[bytes, str], source: Optional[str] = None) -> ParsedFeed:
        """Parse a feed document.

        Args:
            document: Raw document body
            source: Optional URL the document came from, used for logging

        Returns:
            ParsedFeed with items in provider order

        Raises:
            ParseError: If the document is not a recognizable feed
        """
        parsed = feedparser.parse(document)

        # feedparser flags recoverable problems through bozo; only reject
        # documents it could not identify as any feed format at all
        if not parsed.get("version") and not parsed.entries:
            reason = parsed.get("bozo_exception") or "unrecognized feed format"
            raise ParseError(
                f"Invalid feed document: {reason}",
                details={"source": source},
            )
        if parsed.get("bozo"):
            logger.debug(
                "feed_parsed_with_warnings",
                source=source,
                warning=str(parsed.get("bozo_exception")),
            )

        channel = parsed.feed
        image = channel.get("image") or {}
        items = [self._normalize_entry(entry) for entry in parsed.entries]

        return ParsedFeed(
            title=channel.get("title") or UNKNOWN_FEED_TITLE,
            description=channel.get("subtitle") or channel.get("description") or "",
            link=channel.get("link"),
            image_url=image.get("href") or image.get("url"),
            feed_type=parsed.get("version") or None,
            items=items,
        )

    def _normalize_entry(self, entry: Any) -> FeedItem:
        """Convert a feedparser entry into a FeedItem."""
        title = entry.get("title") or ""
        link = entry.get("link")
        published_at = _to_datetime(entry.get("published_parsed")) or _to_datetime(
            entry.get("updated_parsed")
        )
        published_raw = entry.get("published") or entry.get("updated") or ""

        item_id = entry.get("id") or link or f"{title}|{published_raw}"

        return FeedItem(
            id=item_id,
            title=title,
            link=link,
            summary=entry.get("summary") or "",
            published_at=published_at,
            author=entry.get("author") or None,
            media_url=_media_url(entry),
        )
