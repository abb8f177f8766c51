"""Metrics collection and diagnostics for the WaterCrawl client."""

import logging
import time
from collections import defaultdict, deque
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from threading import Lock
from typing import Any, Dict, List, Optional, Deque

from .logging import get_logger


@dataclass
class MetricValue:
    """Individual metric value with timestamp."""
    value: float
    timestamp: datetime = field(default_factory=datetime.utcnow)
    tags: Dict[str, str] = field(default_factory=dict)


@dataclass
class MetricSummary:
    """Summary statistics for a metric."""
    name: str
    count: int
    sum: float
    min: float
    max: float
    avg: float
    latest: float
    latest_timestamp: datetime
    tags: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_values(cls, name: str, values: List[MetricValue]) -> "MetricSummary":
        """Create summary from list of metric values."""
        if not values:
            return cls(
                name=name,
                count=0,
                sum=0.0,
                min=0.0,
                max=0.0,
                avg=0.0,
                latest=0.0,
                latest_timestamp=datetime.utcnow()
            )

        numeric_values = [v.value for v in values]
        latest_value = values[-1]

        return cls(
            name=name,
            count=len(values),
            sum=sum(numeric_values),
            min=min(numeric_values),
            max=max(numeric_values),
            avg=sum(numeric_values) / len(numeric_values),
            latest=latest_value.value,
            latest_timestamp=latest_value.timestamp,
            tags=latest_value.tags.copy()
        )


class MetricsCollector:
    """Collects and aggregates client metrics."""

    def __init__(self, max_values_per_metric: int = 1000):
        self.logger = get_logger(__name__)
        self.max_values_per_metric = max_values_per_metric

        self._metrics: Dict[str, Deque[MetricValue]] = defaultdict(
            lambda: deque(maxlen=self.max_values_per_metric)
        )
        self._counters: Dict[str, float] = defaultdict(float)
        self._gauges: Dict[str, float] = defaultdict(float)

        self._lock = Lock()

    def record_metric(
        self,
        name: str,
        value: float,
        tags: Optional[Dict[str, str]] = None,
        timestamp: Optional[datetime] = None
    ) -> None:
        """Record a metric value.

        Args:
            name: Metric name
            value: Metric value
            tags: Optional tags for the metric
            timestamp: Optional timestamp (defaults to current time)
        """
        metric_value = MetricValue(
            value=value,
            timestamp=timestamp or datetime.utcnow(),
            tags=tags or {}
        )

        with self._lock:
            self._metrics[name].append(metric_value)

    def increment_counter(
        self,
        name: str,
        value: float = 1.0,
        tags: Optional[Dict[str, str]] = None
    ) -> None:
        """Increment a counter metric."""
        with self._lock:
            self._counters[name] += value
            current = self._counters[name]

        self.record_metric(name, current, tags)

    def set_gauge(
        self,
        name: str,
        value: float,
        tags: Optional[Dict[str, str]] = None
    ) -> None:
        """Set a gauge metric value."""
        with self._lock:
            self._gauges[name] = value

        self.record_metric(name, value, tags)

    def record_timing(
        self,
        name: str,
        duration: float,
        tags: Optional[Dict[str, str]] = None
    ) -> None:
        """Record a timing metric.

        Args:
            name: Timer name
            duration: Duration in seconds
            tags: Optional tags
        """
        self.record_metric(f"{name}.duration", duration, tags)
        self.increment_counter(f"{name}.count", tags=tags)

    @contextmanager
    def timer(self, name: str, tags: Optional[Dict[str, str]] = None):
        """Context manager for timing operations.

        Usage:
            with metrics.timer("transport.request"):
                ...
        """
        start_time = time.time()
        try:
            yield
        finally:
            self.record_timing(name, time.time() - start_time, tags)

    def get_counter(self, name: str) -> float:
        """Get the current value of a counter (0 if never incremented)."""
        with self._lock:
            return self._counters.get(name, 0.0)

    def get_gauge(self, name: str) -> Optional[float]:
        """Get the current value of a gauge."""
        with self._lock:
            return self._gauges.get(name)

    def get_metric_summary(self, name: str) -> Optional[MetricSummary]:
        """Get summary statistics for a metric."""
        with self._lock:
            if name not in self._metrics:
                return None
            values = list(self._metrics[name])

        return MetricSummary.from_values(name, values)

    def get_all_metrics(self) -> Dict[str, Any]:
        """Get a snapshot of all counters and gauges."""
        with self._lock:
            return {
                "counters": dict(self._counters),
                "gauges": dict(self._gauges),
            }

    def reset_metrics(self) -> None:
        """Reset all metrics."""
        with self._lock:
            self._metrics.clear()
            self._counters.clear()
            self._gauges.clear()


# Global metrics collector instance
_metrics_collector: Optional[MetricsCollector] = None


def get_metrics_collector() -> MetricsCollector:
    """Get the global metrics collector instance."""
    global _metrics_collector
    if _metrics_collector is None:
        _metrics_collector = MetricsCollector()
    return _metrics_collector


def timer(name: str, tags: Optional[Dict[str, str]] = None):
    """Convenience function for timing operations."""
    return get_metrics_collector().timer(name, tags)


def record_diagnostic(
    logger: logging.Logger,
    name: str,
    message: str,
    level: int = logging.WARNING,
    **fields: Any
) -> Dict[str, Any]:
    """Emit a structured diagnostic for an error that was absorbed.

    The diagnostic is a log record carrying ``extra={"diagnostic": {...}}``
    plus a ``diagnostics.<name>`` counter. It never affects control flow.

    Returns:
        The diagnostic payload that was logged
    """
    diagnostic = {"event": name, **fields}
    logger.log(level, f"{message} ({name})", extra={"diagnostic": diagnostic})
    get_metrics_collector().increment_counter(f"diagnostics.{name}")
    return diagnostic
