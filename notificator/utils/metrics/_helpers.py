"""
Helper functions for Prometheus metric registration.

Metrics are module-level singletons, but modules may be imported more than
once (``--reload``, test collection). These helpers hand back the already
registered collector instead of failing with a duplicate-name error.
"""

from prometheus_client import REGISTRY, Counter, Gauge, Histogram
from prometheus_client.metrics import MetricWrapperBase


def _get_or_create(
    metric_cls: type[MetricWrapperBase],
    name: str,
    doc: str,
    labels: list[str] | None = None,
    **kwargs,
) -> MetricWrapperBase:
    try:
        return metric_cls(name, doc, labels or [], **kwargs)
    except ValueError:
        # Counters register both "<name>" and "<name>_total"
        return REGISTRY._names_to_collectors.get(
            name, REGISTRY._names_to_collectors.get(f"{name}_total")
        )


def _get_or_create_counter(
    name: str, doc: str, labels: list[str] | None = None
) -> Counter:
    return _get_or_create(Counter, name, doc, labels)


def _get_or_create_gauge(
    name: str, doc: str, labels: list[str] | None = None
) -> Gauge:
    return _get_or_create(Gauge, name, doc, labels)


def _get_or_create_histogram(
    name: str,
    doc: str,
    labels: list[str] | None = None,
    buckets: tuple[float, ...] | None = None,
) -> Histogram:
    if buckets:
        return _get_or_create(Histogram, name, doc, labels, buckets=buckets)
    return _get_or_create(Histogram, name, doc, labels)
