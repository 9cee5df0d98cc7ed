"""Prometheus metrics for feed checks, deliveries and scheduling."""

from typing import Dict, Optional, Sequence, Type, TypeVar, Union

from prometheus_client import Counter, Gauge, Histogram, start_http_server

Metric = Union[Counter, Gauge, Histogram]
M = TypeVar("M", Counter, Gauge, Histogram)

NAMESPACE = "feed_relay"
CHECK_DURATION_BUCKETS = (0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0)


class MetricsRegistry:
    """Registry handing out one Prometheus collector per metric name.

    Registering a name twice returns the existing collector, so modules can
    declare the metrics they use at import time.
    """

    def __init__(self, namespace: str = NAMESPACE):
        self.namespace = namespace
        self._metrics: Dict[str, Metric] = {}

    def _register(self, kind: Type[M], name: str, description: str, **kwargs) -> M:
        existing = self._metrics.get(name)
        if existing is not None:
            if not isinstance(existing, kind):
                raise ValueError(f"Metric {name} already registered as {type(existing).__name__}")
            return existing

        metric = kind(name, description, namespace=self.namespace, **kwargs)
        self._metrics[name] = metric
        return metric

    def counter(self, name: str, description: str, labels: Sequence[str] = ()) -> Counter:
        return self._register(Counter, name, description, labelnames=labels)

    def gauge(self, name: str, description: str, labels: Sequence[str] = ()) -> Gauge:
        return self._register(Gauge, name, description, labelnames=labels)

    def histogram(
        self,
        name: str,
        description: str,
        labels: Sequence[str] = (),
        buckets: Sequence[float] = Histogram.DEFAULT_BUCKETS,
    ) -> Histogram:
        return self._register(Histogram, name, description, labelnames=labels, buckets=buckets)

    def get(self, name: str) -> Optional[Metric]:
        return self._metrics.get(name)


metrics = MetricsRegistry()

FEED_CHECKS = metrics.counter("checks_total", "Feed checks by outcome", ["status"])
CHECK_DURATION = metrics.histogram(
    "check_duration_seconds", "Duration of a full feed check", buckets=CHECK_DURATION_BUCKETS
)
ITEM_DELIVERIES = metrics.counter("deliveries_total", "Item deliveries by outcome", ["status"])
SKIPPED_TICKS = metrics.counter(
    "skipped_ticks_total", "Ticks skipped because the previous check was still running"
)
SCHEDULED_FEEDS = metrics.gauge("scheduled_feeds", "Feeds with an active schedule")
PERSISTENCE_FAILURES = metrics.counter(
    "persistence_failures_total", "Failed registry snapshot writes"
)


def start_metrics_server(port: int = 8000):
    """Expose the metrics over HTTP.

    Args:
        port: Port number for metrics server
    """
    start_http_server(port)
