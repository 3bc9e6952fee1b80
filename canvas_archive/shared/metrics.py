"""
In-process metrics for replay runs.

Counters and histograms live in a registry; the replay
collector records what a reconstruction did so the CLI can log a
summary when a run finishes.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Dict, List
from collections import defaultdict

logger = logging.getLogger(__name__)


class MetricType(Enum):
    """Type of metric."""
    COUNTER = "counter"      # Monotonically increasing
    HISTOGRAM = "histogram"  # Distribution of values


@dataclass
class MetricValue:
    """A single metric value with labels."""
    name: str
    value: float
    metric_type: MetricType
    labels: Dict[str, str] = field(default_factory=dict)
    timestamp: Optional[float] = None
    help_text: str = ""


class MetricsRegistry:
    """
    Central registry for all metrics.

    Collectors write metrics here, summaries read from here.
    """

    HISTOGRAM_WINDOW = 1000

    def __init__(self):
        self._metrics: Dict[str, MetricValue] = {}
        self._counters: Dict[str, float] = defaultdict(float)
        self._histograms: Dict[str, list] = defaultdict(list)

    def counter(
        self,
        name: str,
        value: float = 1.0,
        labels: Optional[Dict[str, str]] = None,
        help_text: str = "",
    ):
        """Increment a counter metric (monotonically increasing)."""
        if value < 0:
            raise ValueError(f"Counter {name} cannot decrease (got {value})")
        key = self._make_key(name, labels)
        self._counters[key] += value
        self._metrics[key] = MetricValue(
            name=name,
            value=self._counters[key],
            metric_type=MetricType.COUNTER,
            labels=labels or {},
            timestamp=time.time(),
            help_text=help_text,
        )

    def histogram(
        self,
        name: str,
        value: float,
        labels: Optional[Dict[str, str]] = None,
        help_text: str = "",
    ):
        """Record a histogram value. The reported value is the running mean."""
        key = self._make_key(name, labels)
        self._histograms[key].append(value)

        # Keep the most recent values only
        if len(self._histograms[key]) > self.HISTOGRAM_WINDOW:
            self._histograms[key] = self._histograms[key][-self.HISTOGRAM_WINDOW:]

        values = self._histograms[key]
        self._metrics[key] = MetricValue(
            name=name,
            value=sum(values) / len(values),
            metric_type=MetricType.HISTOGRAM,
            labels=labels or {},
            timestamp=time.time(),
            help_text=help_text,
        )

    def _make_key(self, name: str, labels: Optional[Dict[str, str]]) -> str:
        """Create a unique key for a metric with labels."""
        if not labels:
            return name
        label_str = ",".join(f"{k}={v}" for k, v in sorted(labels.items()))
        return f"{name}{{{label_str}}}"

    def get(self, name: str, labels: Optional[Dict[str, str]] = None) -> Optional[MetricValue]:
        return self._metrics.get(self._make_key(name, labels))

    def value(self, name: str, labels: Optional[Dict[str, str]] = None) -> float:
        """Current value of a metric, 0 if it was never recorded."""
        metric = self.get(name, labels)
        return metric.value if metric else 0.0

    def get_all_metrics(self) -> List[MetricValue]:
        """Get all registered metrics."""
        return list(self._metrics.values())

    def clear(self):
        """Clear all metrics (useful for testing)."""
        self._metrics.clear()
        self._counters.clear()
        self._histograms.clear()


# Global registry
_registry = MetricsRegistry()


def get_registry() -> MetricsRegistry:
    """Get the global metrics registry."""
    return _registry


class ReplayMetricsCollector:
    """
    Records what replay runs do.

    Components hold an optional collector and call its record_*
    methods; the numbers end up in the registry it was built with.
    """

    def __init__(
        self,
        run_id: str = "default",
        registry: Optional[MetricsRegistry] = None,
    ):
        self.run_id = run_id
        self.registry = registry or get_registry()
        self._labels = {"run": run_id}

    def record_event_applied(self, count: int = 1):
        self.registry.counter(
            "events_applied_total",
            count,
            self._labels,
            help_text="Placement events written to the canvas",
        )

    def record_event_clipped(self):
        self.registry.counter(
            "events_clipped_total",
            1,
            self._labels,
            help_text="Placement events partly or fully outside the canvas",
        )

    def record_segment_scanned(self, segment_id: str):
        self.registry.counter(
            "segments_scanned_total",
            1,
            self._labels,
            help_text="Segment tables read",
        )
        logger.debug(f"Scanning segment {segment_id}")

    def record_snapshot(self, render_seconds: Optional[float] = None):
        self.registry.counter(
            "snapshots_emitted_total",
            1,
            self._labels,
            help_text="Snapshots emitted by the scheduler",
        )
        if render_seconds is not None:
            self.registry.histogram(
                "snapshot_render_seconds",
                render_seconds,
                self._labels,
                help_text="Time spent copying and scaling a snapshot",
            )

    def record_keyframe_lookup(self, hit: bool):
        self.registry.counter(
            "keyframe_lookups_total",
            1,
            {**self._labels, "result": "hit" if hit else "miss"},
            help_text="Keyframe lookups, by whether a stored keyframe was found",
        )

    def summary(self) -> Dict[str, float]:
        """Totals for this run, keyed by metric name."""
        return {
            "events_applied": self.registry.value("events_applied_total", self._labels),
            "events_clipped": self.registry.value("events_clipped_total", self._labels),
            "segments_scanned": self.registry.value("segments_scanned_total", self._labels),
            "snapshots_emitted": self.registry.value("snapshots_emitted_total", self._labels),
            "keyframe_hits": self.registry.value(
                "keyframe_lookups_total", {**self._labels, "result": "hit"}
            ),
            "keyframe_misses": self.registry.value(
                "keyframe_lookups_total", {**self._labels, "result": "miss"}
            ),
        }

    def log_summary(self):
        totals = self.summary()
        logger.info(
            "Replay summary: "
            + ", ".join(f"{name}={int(value)}" for name, value in totals.items())
        )
