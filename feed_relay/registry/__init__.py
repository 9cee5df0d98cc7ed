"""Registry of monitored feeds and its persistence."""

from .models import FeedEntry, FeedKey, FeedRecord
from .registry import FeedRegistry
from .snapshot import JsonSnapshotStore, SnapshotStore

__all__ = [
    "FeedEntry",
    "FeedKey",
    "FeedRecord",
    "FeedRegistry",
    "JsonSnapshotStore",
    "SnapshotStore",
]
