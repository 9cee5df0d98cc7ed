"""Feed document parsing."""

from .feed_parser import UNKNOWN_FEED_TITLE, FeedItem, FeedParser, ParsedFeed

__all__ = ["FeedItem", "FeedParser", "ParsedFeed", "UNKNOWN_FEED_TITLE"]
