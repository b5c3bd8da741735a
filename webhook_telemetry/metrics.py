# SPDX-License-Identifier: MIT
# Copyright (c) 2025 webhook-telemetry contributors

"""Metrics collectors for flush and report activity."""

import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Tuple

from prometheus_client import CollectorRegistry, Counter, Histogram

logger = logging.getLogger(__name__)


class MetricsCollector(ABC):
    """Abstract base class for metrics collectors."""

    @abstractmethod
    def increment(self, name: str, value: float = 1.0, tags: dict[str, str] | None = None) -> None:
        """Increment a counter metric.

        Args:
            name: Name of the counter metric
            value: Amount to increment by (default: 1.0)
            tags: Optional dictionary of tags/labels for the metric
        """
        pass

    @abstractmethod
    def observe(self, name: str, value: float, tags: dict[str, str] | None = None) -> None:
        """Observe a value for histogram metrics such as durations.

        Args:
            name: Name of the histogram metric
            value: Value to observe
            tags: Optional dictionary of tags/labels for the metric
        """
        pass


class NoOpMetricsCollector(MetricsCollector):
    """Collector that keeps every call in memory for inspection."""

    def __init__(self):
        self.counters: List[Tuple[str, float, Optional[Dict[str, str]]]] = []
        self.observations: List[Tuple[str, float, Optional[Dict[str, str]]]] = []

    def increment(self, name: str, value: float = 1.0, tags: Optional[Dict[str, str]] = None) -> None:
        self.counters.append((name, value, tags))

    def observe(self, name: str, value: float, tags: Optional[Dict[str, str]] = None) -> None:
        self.observations.append((name, value, tags))

    def get_counter_total(self, name: str, tags: Optional[Dict[str, str]] = None) -> float:
        """Sum all increments recorded for a counter.

        Args:
            name: Counter name
            tags: When given, only increments with exactly these tags count

        Returns:
            Total of the matching increments
        """
        return sum(
            value
            for counter_name, value, counter_tags in self.counters
            if counter_name == name and (tags is None or counter_tags == tags)
        )


class PrometheusMetricsCollector(MetricsCollector):
    """Prometheus metrics collector.

    All calls to the same metric name must use consistent label keys; the
    collector caches one Prometheus object per (name, label keys) pair.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None, namespace: str = "webhook_telemetry",
                 raise_on_error: bool = False):
        """Initialize Prometheus metrics collector.

        Args:
            registry: Optional Prometheus registry (uses default if None)
            namespace: Namespace prefix for all metrics
            raise_on_error: If True, raise exceptions on metric errors (useful for testing).
                           If False, log errors and continue
        """
        self.registry = registry
        self.namespace = namespace
        self.raise_on_error = raise_on_error
        self._counters: dict[tuple, Counter] = {}
        self._histograms: dict[tuple, Histogram] = {}

    def _registry_kwargs(self) -> dict:
        # prometheus_client falls back to the global REGISTRY only when the
        # argument is omitted
        return {"registry": self.registry} if self.registry is not None else {}

    def _get_or_create_counter(self, name: str, tags: dict[str, str] | None = None) -> Counter:
        labelnames = tuple(sorted(tags.keys())) if tags else ()
        cache_key = (name, labelnames)

        if cache_key not in self._counters:
            self._counters[cache_key] = Counter(
                name=name,
                documentation=f"Counter metric: {name}",
                labelnames=labelnames,
                namespace=self.namespace,
                **self._registry_kwargs(),
            )

        return self._counters[cache_key]

    def _get_or_create_histogram(self, name: str, tags: dict[str, str] | None = None) -> Histogram:
        labelnames = tuple(sorted(tags.keys())) if tags else ()
        cache_key = (name, labelnames)

        if cache_key not in self._histograms:
            self._histograms[cache_key] = Histogram(
                name=name,
                documentation=f"Histogram metric: {name}",
                labelnames=labelnames,
                namespace=self.namespace,
                **self._registry_kwargs(),
            )

        return self._histograms[cache_key]

    def increment(self, name: str, value: float = 1.0, tags: dict[str, str] | None = None) -> None:
        try:
            counter = self._get_or_create_counter(name, tags)
            if tags:
                counter.labels(**tags).inc(value)
            else:
                counter.inc(value)
        except Exception as e:
            logger.error(f"Failed to increment counter {name}: {e}")
            if self.raise_on_error:
                raise

    def observe(self, name: str, value: float, tags: dict[str, str] | None = None) -> None:
        try:
            histogram = self._get_or_create_histogram(name, tags)
            if tags:
                histogram.labels(**tags).observe(value)
            else:
                histogram.observe(value)
        except Exception as e:
            logger.error(f"Failed to observe histogram {name}: {e}")
            if self.raise_on_error:
                raise
