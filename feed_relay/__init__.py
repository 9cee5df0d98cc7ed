"""Feed relay module."""

from .config import MonitorConfig
from .dispatcher import Dispatcher, DispatchReport
from .monitor import FeedMonitor
from .parsing import FeedItem, FeedParser, ParsedFeed
from .poller import CheckResult, CheckStatus, Poller
from .registry import FeedEntry, FeedRegistry, JsonSnapshotStore
from .scheduler import Scheduler

__version__ = "1.0.0"

__all__ = [
    "CheckResult",
    "CheckStatus",
    "DispatchReport",
    "Dispatcher",
    "FeedEntry",
    "FeedItem",
    "FeedMonitor",
    "FeedParser",
    "FeedRegistry",
    "JsonSnapshotStore",
    "MonitorConfig",
    "ParsedFeed",
    "Poller",
    "Scheduler",
]
