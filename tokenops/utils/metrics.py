"""
Prometheus Metrics Collector

In-process metrics for the queue pipeline, blockchain operations and
notification delivery. Generates Prometheus text exposition format
(text/plain; version=0.0.4).
"""
import time
import threading
from typing import Dict, List, Optional
from dataclasses import dataclass, field


@dataclass
class MetricValue:
    """Single metric value with optional labels."""
    value: float
    labels: Dict[str, str] = field(default_factory=dict)


class _Metric:
    """Shared label handling for all metric kinds."""

    kind = "untyped"

    def __init__(self, name: str, description: str, labels: Optional[List[str]] = None):
        self.name = name
        self.description = description
        self.label_names = labels or []
        self._values: Dict[tuple, float] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _label_key(labels: Dict[str, str]) -> tuple:
        return tuple(sorted((k, str(v)) for k, v in labels.items()))

    def value(self, **labels: str) -> float:
        """Current value for a label set (0 when never touched)."""
        with self._lock:
            return self._values.get(self._label_key(labels), 0.0)

    def collect(self) -> List[MetricValue]:
        with self._lock:
            return [MetricValue(value=v, labels=dict(k)) for k, v in self._values.items()]


class Counter(_Metric):
    """
    Prometheus Counter metric.

    Only goes up. Used for: jobs enqueued, retries, dead letters, webhook deliveries.
    """

    kind = "counter"

    def inc(self, amount: float = 1.0, **labels: str) -> None:
        key = self._label_key(labels)
        with self._lock:
            self._values[key] = self._values.get(key, 0.0) + amount


class Gauge(_Metric):
    """
    Prometheus Gauge metric.

    Goes up and down. Used for: queue depth, in-flight messages.
    """

    kind = "gauge"

    def set(self, value: float, **labels: str) -> None:
        with self._lock:
            self._values[self._label_key(labels)] = value

    def inc(self, amount: float = 1.0, **labels: str) -> None:
        key = self._label_key(labels)
        with self._lock:
            self._values[key] = self._values.get(key, 0.0) + amount

    def dec(self, amount: float = 1.0, **labels: str) -> None:
        self.inc(-amount, **labels)


class Histogram(_Metric):
    """
    Prometheus Histogram metric.

    Samples observations and counts them in cumulative buckets.
    """

    kind = "histogram"

    # Blockchain writes wait for a receipt, so buckets stretch to minutes
    DEFAULT_BUCKETS = (0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0)

    def __init__(
        self,
        name: str,
        description: str,
        labels: Optional[List[str]] = None,
        buckets: Optional[tuple] = None
    ):
        super().__init__(name, description, labels)
        self.buckets = buckets or self.DEFAULT_BUCKETS
        self._series: Dict[tuple, Dict] = {}

    def observe(self, value: float, **labels: str) -> None:
        key = self._label_key(labels)
        with self._lock:
            data = self._series.setdefault(
                key, {"buckets": {b: 0 for b in self.buckets}, "sum": 0.0, "count": 0}
            )
            data["sum"] += value
            data["count"] += 1
            for bucket in self.buckets:
                if value <= bucket:
                    data["buckets"][bucket] += 1

    def count(self, **labels: str) -> int:
        with self._lock:
            data = self._series.get(self._label_key(labels))
            return data["count"] if data else 0

    def collect(self) -> List[MetricValue]:
        result = []
        with self._lock:
            for key, data in self._series.items():
                base_labels = dict(key)
                for bucket in sorted(self.buckets):
                    result.append(MetricValue(data["buckets"][bucket], {**base_labels, "le": str(bucket)}))
                result.append(MetricValue(data["count"], {**base_labels, "le": "+Inf"}))
                result.append(MetricValue(data["sum"], {**base_labels, "_metric": "sum"}))
                result.append(MetricValue(data["count"], {**base_labels, "_metric": "count"}))
        return result


class Timer:
    """Context manager for timing code blocks."""

    def __init__(self, histogram: Histogram, **labels: str):
        self.histogram = histogram
        self.labels = labels
        self.start_time: Optional[float] = None

    def __enter__(self) -> "Timer":
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, *args) -> None:
        if self.start_time is not None:
            self.histogram.observe(time.perf_counter() - self.start_time, **self.labels)


class MetricsRegistry:
    """
    Central registry for all application metrics.

    Provides singleton access and Prometheus text format export.
    """

    _instance: Optional["MetricsRegistry"] = None
    _lock = threading.Lock()

    def __new__(cls) -> "MetricsRegistry":
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self._metrics: Dict[str, _Metric] = {}
        self._initialized = True
        self._setup_metrics()

    def _setup_metrics(self) -> None:
        """Initialize all application metrics."""

        # ============================================
        # QUEUE METRICS
        # ============================================
        self.jobs_enqueued = self.counter(
            "tokenops_jobs_enqueued_total",
            "Messages published by operation type",
            ["operation"]
        )

        self.jobs_completed = self.counter(
            "tokenops_jobs_completed_total",
            "Messages handled successfully by queue",
            ["queue"]
        )

        self.jobs_retried = self.counter(
            "tokenops_jobs_retried_total",
            "Messages scheduled for another attempt by queue",
            ["queue"]
        )

        self.jobs_dead_lettered = self.counter(
            "tokenops_jobs_dead_lettered_total",
            "Messages routed to the dead-letter exchange by queue",
            ["queue"]
        )

        self.queue_depth = self.gauge(
            "tokenops_queue_depth",
            "Messages waiting in each queue",
            ["queue"]
        )

        self.queue_in_flight = self.gauge(
            "tokenops_queue_in_flight",
            "Messages currently being handled by each worker",
            ["queue"]
        )

        self.handler_duration = self.histogram(
            "tokenops_handler_duration_seconds",
            "Message handler duration in seconds",
            ["queue"]
        )

        # ============================================
        # OPERATION METRICS
        # ============================================
        self.operations_total = self.counter(
            "tokenops_operations_total",
            "Contract operations by name and outcome",
            ["operation", "status"]
        )

        self.operation_duration = self.histogram(
            "tokenops_operation_duration_seconds",
            "End-to-end contract operation duration",
            ["operation"]
        )

        self.role_grants = self.counter(
            "tokenops_role_grants_total",
            "Role grants submitted by role",
            ["role"]
        )

        self.ledger_reconciliation = self.counter(
            "tokenops_ledger_reconciliation_total",
            "Chain results that could not be written to the ledger",
            ["operation"]
        )

        # ============================================
        # NOTIFICATION METRICS
        # ============================================
        self.webhook_deliveries = self.counter(
            "tokenops_webhook_deliveries_total",
            "Webhook POST attempts by event and outcome",
            ["event", "outcome"]
        )

        self.emails_sent = self.counter(
            "tokenops_emails_total",
            "Email notifications by template and outcome",
            ["template", "outcome"]
        )

    def counter(self, name: str, description: str, labels: Optional[List[str]] = None) -> Counter:
        """Create and register a counter."""
        metric = Counter(name, description, labels)
        self._metrics[name] = metric
        return metric

    def gauge(self, name: str, description: str, labels: Optional[List[str]] = None) -> Gauge:
        """Create and register a gauge."""
        metric = Gauge(name, description, labels)
        self._metrics[name] = metric
        return metric

    def histogram(
        self,
        name: str,
        description: str,
        labels: Optional[List[str]] = None,
        buckets: Optional[tuple] = None
    ) -> Histogram:
        """Create and register a histogram."""
        metric = Histogram(name, description, labels, buckets)
        self._metrics[name] = metric
        return metric

    def export(self) -> str:
        """
        Export all metrics in Prometheus text exposition format.

        Format specification:
        https://prometheus.io/docs/instrumenting/exposition_formats/
        """
        lines = []

        for name, metric in self._metrics.items():
            lines.append(f"# HELP {name} {metric.description}")
            lines.append(f"# TYPE {name} {metric.kind}")

            for mv in metric.collect():
                metric_name = name
                if isinstance(metric, Histogram):
                    if "_metric" in mv.labels:
                        metric_name = f"{name}_{mv.labels.pop('_metric')}"
                    elif "le" in mv.labels:
                        metric_name = f"{name}_bucket"

                lines.append(f"{metric_name}{self._format_labels(mv.labels)} {mv.value}")

            lines.append("")

        return "\n".join(lines)

    def _format_labels(self, labels: Dict[str, str]) -> str:
        if not labels:
            return ""

        parts = [f'{k}="{v}"' for k, v in sorted(labels.items())]
        return "{" + ",".join(parts) + "}"

    def reset(self) -> None:
        """Reset all metrics. Useful for testing."""
        self._metrics.clear()
        self._setup_metrics()


# Global metrics instance
metrics = MetricsRegistry()
