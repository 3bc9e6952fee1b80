"""
Tests for stitching segment streams into one ordered stream.
"""

import pytest
from datetime import timedelta

from canvas_archive.replay.event_source import EventSource
from canvas_archive.shared.errors import UpstreamReadError
from canvas_archive.shared.time_range import DateTimeRange
from canvas_archive.storage.partitions import build_catalog

from factories import T0, RED, InMemoryEventSource, placement


def seconds(s: float) -> timedelta:
    return timedelta(seconds=s)


@pytest.fixture
def catalog():
    """Four 10-second segments starting at T0."""
    return build_catalog(start=T0, step=seconds(10), count=4, prefix="seg")


async def collect(source, catalog, window):
    return [event async for event in source.stream_window(catalog, window)]


class TestStreamWindow:
    """Tests for EventSource.stream_window."""

    @pytest.mark.asyncio
    async def test_spans_segments_in_order(self, catalog):
        events = [placement(s, 0, 0) for s in (1, 9, 10, 15, 25, 31)]
        source = InMemoryEventSource(events, catalog)

        result = await collect(source, catalog, DateTimeRange(T0, T0 + seconds(40)))

        assert [e.timestamp for e in result] == [e.timestamp for e in events]
        assert [r[0] for r in source.requests] == ["seg1", "seg2", "seg3", "seg4"]

    @pytest.mark.asyncio
    async def test_only_overlapping_segments_are_read(self, catalog):
        source = InMemoryEventSource([placement(15, 0, 0)], catalog)
        await collect(source, catalog, DateTimeRange(T0 + seconds(12), T0 + seconds(18)))
        assert [r[0] for r in source.requests] == ["seg2"]

    @pytest.mark.asyncio
    async def test_trims_exclusive_edges(self, catalog):
        events = [placement(s, 0, 0) for s in (5, 6, 12, 15)]
        source = InMemoryEventSource(events, catalog)

        window = DateTimeRange(T0 + seconds(5), T0 + seconds(15), start_inclusive=False, end_inclusive=False)
        result = await collect(source, catalog, window)

        assert [e.timestamp for e in result] == [T0 + seconds(6), T0 + seconds(12)]

    @pytest.mark.asyncio
    async def test_inclusive_end(self, catalog):
        source = InMemoryEventSource([placement(15, 0, 0)], catalog)
        window = DateTimeRange(T0, T0 + seconds(15), end_inclusive=True)
        assert len(await collect(source, catalog, window)) == 1

    @pytest.mark.asyncio
    async def test_window_outside_catalog_is_empty(self, catalog):
        source = InMemoryEventSource([placement(1, 0, 0)], catalog)
        window = DateTimeRange(T0 + seconds(100), T0 + seconds(200))
        assert await collect(source, catalog, window) == []
        assert source.requests == []

    @pytest.mark.asyncio
    async def test_regressing_timestamps_raise(self, catalog):
        class BrokenSource(EventSource):
            async def stream(self, segment_id, window_start, window_end):
                if segment_id == "seg1":
                    yield placement(8, 0, 0)
                else:
                    yield placement(3, 0, 0)

        with pytest.raises(UpstreamReadError):
            await collect(BrokenSource(), catalog, DateTimeRange(T0, T0 + seconds(20)))

    @pytest.mark.asyncio
    async def test_early_exit_closes_segment_stream(self, catalog):
        events = [placement(s, 0, 0, RED) for s in range(0, 40)]
        source = InMemoryEventSource(events, catalog)

        stream = source.stream_window(catalog, DateTimeRange(T0, T0 + seconds(40)))
        await stream.__anext__()
        await stream.aclose()

        assert source.closed == ["seg1"]
