"""
Tests for the shared metrics module.
"""

import pytest
from canvas_archive.shared.metrics import (
    MetricType,
    MetricsRegistry,
    ReplayMetricsCollector,
)


class TestMetricsRegistry:
    """Tests for MetricsRegistry class."""

    def test_counter(self):
        registry = MetricsRegistry()
        registry.counter("test_counter", 1)
        registry.counter("test_counter", 2)

        metric = registry.get("test_counter")
        assert metric.value == 3
        assert metric.metric_type == MetricType.COUNTER

    def test_counter_cannot_decrease(self):
        registry = MetricsRegistry()
        with pytest.raises(ValueError):
            registry.counter("test_counter", -1)

    def test_counter_with_labels(self):
        registry = MetricsRegistry()
        registry.counter("requests", 1, {"segment": "a"})
        registry.counter("requests", 1, {"segment": "b"})
        registry.counter("requests", 2, {"segment": "a"})

        assert registry.value("requests", {"segment": "a"}) == 3
        assert registry.value("requests", {"segment": "b"}) == 1
        assert len(registry.get_all_metrics()) == 2


    def test_histogram_mean(self):
        registry = MetricsRegistry()
        for v in (0.1, 0.2, 0.3):
            registry.histogram("duration", v)
        assert registry.value("duration") == pytest.approx(0.2)

    def test_histogram_window(self):
        registry = MetricsRegistry()
        registry.histogram("duration", 1000.0)
        for _ in range(MetricsRegistry.HISTOGRAM_WINDOW):
            registry.histogram("duration", 1.0)
        assert registry.value("duration") == pytest.approx(1.0)

    def test_missing_metric_is_zero(self):
        assert MetricsRegistry().value("nothing") == 0.0

    def test_help_text(self):
        registry = MetricsRegistry()
        registry.counter("test_metric", 1, help_text="A test metric")
        assert registry.get("test_metric").help_text == "A test metric"

    def test_clear(self):
        registry = MetricsRegistry()
        registry.counter("c")
        registry.clear()
        assert registry.get_all_metrics() == []


class TestReplayMetricsCollector:
    """Tests for ReplayMetricsCollector class."""

    @pytest.fixture
    def collector(self):
        return ReplayMetricsCollector(run_id="test-run", registry=MetricsRegistry())

    def test_labels(self, collector):
        assert collector._labels["run"] == "test-run"

    def test_events(self, collector):
        collector.record_event_applied()
        collector.record_event_applied(4)
        collector.record_event_clipped()

        summary = collector.summary()
        assert summary["events_applied"] == 5
        assert summary["events_clipped"] == 1

    def test_segments_and_snapshots(self, collector):
        collector.record_segment_scanned("inputs_part1")
        collector.record_segment_scanned("inputs_part2")
        collector.record_snapshot(0.01)
        collector.record_snapshot()

        summary = collector.summary()
        assert summary["segments_scanned"] == 2
        assert summary["snapshots_emitted"] == 2
        assert collector.registry.value("snapshot_render_seconds", {"run": "test-run"}) == pytest.approx(0.01)

    def test_keyframe_lookups(self, collector):
        collector.record_keyframe_lookup(hit=True)
        collector.record_keyframe_lookup(hit=False)
        collector.record_keyframe_lookup(hit=False)

        summary = collector.summary()
        assert summary["keyframe_hits"] == 1
        assert summary["keyframe_misses"] == 2

    def test_runs_are_separate(self):
        registry = MetricsRegistry()
        first = ReplayMetricsCollector("one", registry)
        second = ReplayMetricsCollector("two", registry)
        first.record_event_applied()
        assert second.summary()["events_applied"] == 0

    def test_log_summary(self, collector, caplog):
        collector.record_event_applied()
        with caplog.at_level("INFO"):
            collector.log_summary()
        assert "events_applied=1" in caplog.text

    def test_metric_types(self, collector):
        collector.record_event_applied()
        collector.record_snapshot(0.02)
        collector.record_keyframe_lookup(hit=True)

        types = {metric.metric_type for metric in collector.registry.get_all_metrics()}
        assert types == {MetricType.COUNTER, MetricType.HISTOGRAM}
