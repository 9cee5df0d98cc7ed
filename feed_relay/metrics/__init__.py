"""Metrics for the feed relay."""

from .prometheus import (
    CHECK_DURATION,
    FEED_CHECKS,
    ITEM_DELIVERIES,
    PERSISTENCE_FAILURES,
    SCHEDULED_FEEDS,
    SKIPPED_TICKS,
    MetricsRegistry,
    metrics,
    start_metrics_server,
)

__all__ = [
    "CHECK_DURATION",
    "FEED_CHECKS",
    "ITEM_DELIVERIES",
    "PERSISTENCE_FAILURES",
    "SCHEDULED_FEEDS",
    "SKIPPED_TICKS",
    "MetricsRegistry",
    "metrics",
    "start_metrics_server",
]
