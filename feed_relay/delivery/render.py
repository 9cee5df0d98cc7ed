"""Rendering of feed items into delivery messages."""

import re
from datetime import datetime, timezone
from html import unescape
from typing import Any, Dict, Optional

from feed_relay.parsing import FeedItem, ParsedFeed

MAX_TITLE_LENGTH = 256
MAX_DESCRIPTION_LENGTH = 2048
EMBED_COLOR = 0x0099FF
NO_DESCRIPTION = "No description available"


def truncate(text: Optional[str], max_length: int) -> str:
    """Shorten text to max_length characters, marking the cut with an ellipsis."""
    if not text:
        return ""
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."


def strip_html(text: str) -> str:
    """Remove markup from a feed summary."""
    text = re.sub(r"<[^>]+>", "", text)
    return re.sub(r"\s+", " ", unescape(text)).strip()


def render_item(feed: ParsedFeed, item: FeedItem) -> Dict[str, Any]:
    """Build the message payload for one item.

    Args:
        feed: Parsed feed the item belongs to
        item: Item to render

    Returns:
        JSON-compatible message dict
    """
    published = item.published_at or datetime.now(timezone.utc)
    message: Dict[str, Any] = {
        "title": truncate(item.title, MAX_TITLE_LENGTH) or "No Title",
        "description": truncate(strip_html(item.summary), MAX_DESCRIPTION_LENGTH)
        or NO_DESCRIPTION,
        "color": EMBED_COLOR,
        "timestamp": published.isoformat(),
        "footer": {"text": feed.title or "RSS Feed"},
    }
    if item.link:
        message["url"] = item.link
    if feed.image_url:
        message["footer"]["icon_url"] = feed.image_url
    if item.author:
        message["author"] = {"name": item.author}
    if item.media_url:
        message["thumbnail"] = {"url": item.media_url}
    return message
