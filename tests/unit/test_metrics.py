import pytest
from prometheus_client import REGISTRY, Counter

from feed_relay.metrics import FEED_CHECKS, MetricsRegistry, metrics


def test_registering_twice_returns_same_collector():
    registry = MetricsRegistry(namespace="test_registry")

    first = registry.counter("events_total", "Events", ["kind"])
    second = registry.counter("events_total", "Events", ["kind"])

    assert first is second
    assert isinstance(first, Counter)
    assert registry.get("events_total") is first


def test_registering_name_with_other_type_fails():
    registry = MetricsRegistry(namespace="test_conflict")
    registry.gauge("depth", "Depth")

    with pytest.raises(ValueError):
        registry.counter("depth", "Depth")


def test_check_counter_is_namespaced():
    before = REGISTRY.get_sample_value("feed_relay_checks_total", {"status": "baseline"}) or 0

    FEED_CHECKS.labels(status="baseline").inc()

    assert REGISTRY.get_sample_value("feed_relay_checks_total", {"status": "baseline"}) == (
        before + 1
    )
    assert metrics.get("checks_total") is FEED_CHECKS
