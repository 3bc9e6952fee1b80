"""
Fixed-cadence snapshot scheduling.

Turns a bursty, timestamp-ordered placement stream into evenly spaced
canvas snapshots. Quiet stretches produce repeated identical frames so
a timelapse keeps real-time pacing.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import AsyncIterable, AsyncIterator, Iterator, Optional

import numpy as np

from ..canvas.reconstructor import CanvasReconstructor
from ..shared.errors import InvalidRangeError
from ..shared.metrics import ReplayMetricsCollector
from ..shared.protocol import PlacementEvent
from ..shared.time_range import DateTimeRange

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Snapshot:
    """A read-only canvas copy and the tick it was taken at."""
    pixels: np.ndarray = field(compare=False)
    timestamp: datetime
    index: int = 0


def _check_interval(interval: timedelta):
    if interval <= timedelta(0):
        raise ValueError(f"Snapshot interval must be positive, got {interval}")


def tick_times(
    start: datetime,
    end: datetime,
    interval: timedelta,
    emit_start: bool = False,
) -> Iterator[datetime]:
    """
    Tick timestamps for [start, end].

    Ticks fall every `interval` after `start` (and on `start` itself when
    emit_start is set) while they are before `end`; `end` is always the
    last tick.
    """
    _check_interval(interval)
    if start > end:
        raise InvalidRangeError(f"Tick window ends at {end.isoformat()} before it starts at {start.isoformat()}")

    current = start if emit_start else start + interval
    while current < end:
        yield current
        current += interval
    yield end


def timelapse_timestamps(
    window: DateTimeRange,
    interval: timedelta,
    emit_start: bool = False,
) -> Iterator[datetime]:
    """The timestamps SnapshotScheduler.run emits for a window, without touching data."""
    return tick_times(window.start, window.end, interval, emit_start)


class SnapshotScheduler:
    """
    Drives a reconstructor and emits snapshots at a constant cadence.

    Features:
    - Catch-up ticks through quiet stretches
    - Placements stamped exactly on a tick are applied before it
    - A final snapshot at the window end
    - Lazy output: one snapshot per consumer request
    """

    def __init__(
        self,
        reconstructor: CanvasReconstructor,
        interval: timedelta,
        emit_start: bool = False,
        scale: int = 1,
        metrics: Optional[ReplayMetricsCollector] = None,
    ):
        _check_interval(interval)
        if scale < 1:
            raise ValueError(f"Scale must be a positive integer, got {scale}")

        self.reconstructor = reconstructor
        self.interval = interval
        self.emit_start = emit_start
        self.scale = scale
        self.metrics = metrics

    def _take(self, at_time: datetime, index: int) -> Snapshot:
        started = time.perf_counter()
        pixels = self.reconstructor.snapshot(at_time, self.scale)
        if self.metrics:
            self.metrics.record_snapshot(time.perf_counter() - started)
        return Snapshot(pixels=pixels, timestamp=at_time, index=index)

    async def run(
        self,
        events: AsyncIterable[PlacementEvent],
        start: datetime,
        end: datetime,
    ) -> AsyncIterator[Snapshot]:
        """
        Apply `events` and yield snapshots for the window [start, end].

        Args:
            events: Timestamp-ordered placements; the reconstructor should
                already hold the keyframe they continue from
            start: First instant of the window
            end: Last instant of the window; placements stamped exactly
                at `end` are included in the final snapshot

        Yields:
            Snapshots in tick order
        """
        if start > end:
            raise InvalidRangeError(f"Snapshot window ends at {end.isoformat()} before it starts at {start.isoformat()}")

        index = 0
        next_emit = start if self.emit_start else start + self.interval

        async for event in events:
            if event.timestamp > end:
                logger.debug(f"Stopping at placement {event.timestamp.isoformat()} past window end")
                break

            # Catch up on ticks the placement has moved past
            while event.timestamp > next_emit:
                yield self._take(next_emit, index)
                index += 1
                next_emit += self.interval

            self.reconstructor.apply(event)

        while next_emit < end:
            yield self._take(next_emit, index)
            index += 1
            next_emit += self.interval

        yield self._take(end, index)
        logger.debug(f"Emitted {index + 1} snapshots for {start.isoformat()} - {end.isoformat()}")
