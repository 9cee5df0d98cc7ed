"""Configuration settings for the feed monitoring engine."""

import json
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass
class MonitorConfig:
    """Configuration for the feed monitor.

    Attributes:
        snapshot_path: Path of the JSON registry snapshot
        default_interval: Polling interval in seconds for feeds added without one
        min_interval: Smallest accepted polling interval in seconds
        max_interval: Largest accepted polling interval in seconds
        max_feeds_per_destination: Maximum number of feeds one destination may hold
        max_items_per_check: Maximum number of new items delivered per check
        delivery_pacing: Seconds to wait between two deliveries of the same batch
        fetch_timeout: Timeout in seconds for fetching a feed document
        max_document_bytes: Largest feed document accepted by the fetcher
        user_agent: User-Agent header sent when fetching feeds
        shutdown_grace: Seconds in-flight checks get to finish on shutdown
        webhooks: Mapping of destination name to webhook URL
        webhook_auth_token: Optional bearer token sent with webhook deliveries
        log_level: Minimum log level
        metrics_port: Port for the Prometheus metrics server, disabled if None
    """

    snapshot_path: str = "./data/feeds.json"
    default_interval: float = 300.0
    min_interval: float = 60.0
    max_interval: float = 86400.0
    max_feeds_per_destination: int = 10
    max_items_per_check: int = 5
    delivery_pacing: float = 1.0
    fetch_timeout: float = 30.0
    max_document_bytes: int = 5 * 1024 * 1024
    user_agent: str = "FeedRelay/1.0"
    shutdown_grace: float = 10.0
    webhooks: Dict[str, str] = field(default_factory=dict)
    webhook_auth_token: Optional[str] = None
    log_level: str = "info"
    metrics_port: Optional[int] = None

    def validate(self) -> "MonitorConfig":
        """Check the configured bounds.

        Returns:
            The config itself, for chaining

        Raises:
            ValueError: If a bound is non-positive or out of order
        """
        if self.min_interval <= 0 or self.max_interval < self.min_interval:
            raise ValueError("interval bounds must satisfy 0 < min_interval <= max_interval")
        if not self.min_interval <= self.default_interval <= self.max_interval:
            raise ValueError("default_interval must lie within the interval bounds")
        if self.max_feeds_per_destination < 1:
            raise ValueError("max_feeds_per_destination must be at least 1")
        if self.max_items_per_check < 1:
            raise ValueError("max_items_per_check must be at least 1")
        if self.delivery_pacing < 1.0:
            raise ValueError("delivery_pacing must be at least one second")
        if self.fetch_timeout <= 0:
            raise ValueError("fetch_timeout must be positive")
        return self

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> "MonitorConfig":
        """Create a MonitorConfig instance from a dictionary.

        Args:
            config_dict: Dictionary containing configuration values

        Returns:
            MonitorConfig instance with values from dictionary
        """
        return cls(**{k: v for k, v in config_dict.items() if k in cls.__dataclass_fields__})

    @classmethod
    def from_env(cls) -> "MonitorConfig":
        """Create config from environment variables.

        Environment Variables:
            FEED_RELAY_SNAPSHOT: Snapshot path
            FEED_RELAY_DEFAULT_INTERVAL: Default polling interval in seconds
            FEED_RELAY_MAX_FEEDS: Feeds allowed per destination
            FEED_RELAY_MAX_ITEMS: Items delivered per check
            FEED_RELAY_PACING: Seconds between deliveries
            FEED_RELAY_FETCH_TIMEOUT: Fetch timeout in seconds
            FEED_RELAY_SHUTDOWN_GRACE: Shutdown grace period in seconds
            FEED_RELAY_WEBHOOKS: JSON object mapping destinations to webhook URLs
            FEED_RELAY_WEBHOOK_TOKEN: Optional webhook bearer token
            LOG_LEVEL: Log level
            METRICS_PORT: Optional metrics server port

        Returns:
            MonitorConfig instance
        """
        defaults = cls()
        metrics_port = os.getenv("METRICS_PORT")

        return cls(
            snapshot_path=os.getenv("FEED_RELAY_SNAPSHOT", defaults.snapshot_path),
            default_interval=float(
                os.getenv("FEED_RELAY_DEFAULT_INTERVAL", defaults.default_interval)
            ),
            max_feeds_per_destination=int(
                os.getenv("FEED_RELAY_MAX_FEEDS", defaults.max_feeds_per_destination)
            ),
            max_items_per_check=int(
                os.getenv("FEED_RELAY_MAX_ITEMS", defaults.max_items_per_check)
            ),
            delivery_pacing=float(os.getenv("FEED_RELAY_PACING", defaults.delivery_pacing)),
            fetch_timeout=float(os.getenv("FEED_RELAY_FETCH_TIMEOUT", defaults.fetch_timeout)),
            shutdown_grace=float(
                os.getenv("FEED_RELAY_SHUTDOWN_GRACE", defaults.shutdown_grace)
            ),
            webhooks=json.loads(os.getenv("FEED_RELAY_WEBHOOKS", "{}")),
            webhook_auth_token=os.getenv("FEED_RELAY_WEBHOOK_TOKEN"),
            log_level=os.getenv("LOG_LEVEL", defaults.log_level),
            metrics_port=int(metrics_port) if metrics_port else None,
        )
