"""Feed document retrieval."""

from .fetcher import FeedFetcher

__all__ = ["FeedFetcher"]
