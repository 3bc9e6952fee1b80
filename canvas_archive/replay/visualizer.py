"""
High-level canvas visualizer.

Ties keyframes, the segment catalog, the event source, the
reconstructor and the scheduler together:

    keyframe = nearest keyframe before the window
    events   = placements from the keyframe up to the window end
    frames   = scheduler ticks over the window
"""

import logging
from contextlib import aclosing
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import AsyncIterator, Optional

import numpy as np

from ..canvas.reconstructor import CanvasReconstructor
from ..shared.errors import StorageWriteError
from ..shared.metrics import ReplayMetricsCollector
from ..shared.protocol import Keyframe
from ..shared.time_range import DateTimeRange
from ..storage.keyframes import KeyframeStore
from ..storage.partitions import DEFAULT_CATALOG, PartitionCatalog
from .event_source import EventSource
from .scheduler import Snapshot, SnapshotScheduler

logger = logging.getLogger(__name__)


@dataclass
class ReplayConfig:
    """Replay settings, the `replay` section of the config file."""
    interval_seconds: float = 60.0
    scale: int = 1
    emit_start: bool = False
    keyframe_interval_seconds: float = 3600.0

    @property
    def interval(self) -> timedelta:
        return timedelta(seconds=self.interval_seconds)

    @property
    def keyframe_interval(self) -> timedelta:
        return timedelta(seconds=self.keyframe_interval_seconds)

    @classmethod
    def from_dict(cls, data: dict) -> "ReplayConfig":
        return cls(
            interval_seconds=data.get("interval_seconds", cls.interval_seconds),
            scale=data.get("scale", cls.scale),
            emit_start=data.get("emit_start", cls.emit_start),
            keyframe_interval_seconds=data.get("keyframe_interval_seconds", cls.keyframe_interval_seconds),
        )


class CanvasVisualizer:
    """
    Renders the canvas at single instants or across windows.

    Every call builds its own reconstructor, so concurrent calls share
    only the read-only catalog.
    """

    def __init__(
        self,
        keyframes: KeyframeStore,
        source: EventSource,
        catalog: PartitionCatalog = DEFAULT_CATALOG,
        metrics: Optional[ReplayMetricsCollector] = None,
    ):
        self.keyframes = keyframes
        self.source = source
        self.catalog = catalog
        self.metrics = metrics

    async def _prepare(self, start: datetime, end: datetime):
        """Load the keyframe for `start` and open the placement stream up to `end`."""
        keyframe = await self.keyframes.nearest_before(start)
        reconstructor = CanvasReconstructor(background=self.keyframes.background, metrics=self.metrics)
        reconstructor.load_keyframe(keyframe)

        # Placements stamped at the keyframe instant are replayed again; the last write wins
        replay_range = DateTimeRange(keyframe.timestamp, end, end_inclusive=True)
        logger.debug(f"Replaying {replay_range} from keyframe {keyframe.image_path or 'blank'}")
        return reconstructor, self.source.stream_window(self.catalog, replay_range)

    async def image_at(self, moment: datetime, scale: int = 1) -> np.ndarray:
        """The canvas as it looked at `moment`, including placements stamped at it."""
        reconstructor, events = await self._prepare(moment, moment)
        async with aclosing(events):
            async for event in events:
                reconstructor.apply(event)
        return reconstructor.snapshot(moment, scale)

    async def snapshots(
        self,
        window: DateTimeRange,
        interval: timedelta,
        scale: int = 1,
        emit_start: bool = False,
    ) -> AsyncIterator[Snapshot]:
        """
        Stream evenly spaced snapshots over a window.

        Nothing is read until the first snapshot is requested; closing
        the iterator early releases the storage session.
        """
        reconstructor, events = await self._prepare(window.start, window.end)
        scheduler = SnapshotScheduler(
            reconstructor,
            interval,
            emit_start=emit_start,
            scale=scale,
            metrics=self.metrics,
        )

        async with aclosing(events):
            async with aclosing(scheduler.run(events, window.start, window.end)) as frames:
                async for snapshot in frames:
                    yield snapshot

    async def build_keyframes(
        self,
        window: DateTimeRange,
        interval: timedelta,
        batch_size: int = 8,
    ) -> int:
        """
        Snapshot a window at `interval` and store each snapshot as a keyframe.

        Args:
            window: Window to cover
            interval: Spacing between keyframes
            batch_size: Keyframes held in memory before they are written

        Returns:
            Number of keyframes stored

        Raises:
            StorageWriteError: if any keyframe could not be stored
        """
        stored = 0
        attempted = 0
        pending = []

        async with aclosing(self.snapshots(window, interval)) as frames:
            async for snapshot in frames:
                pending.append(Keyframe(pixels=snapshot.pixels, timestamp=snapshot.timestamp))
                if len(pending) >= batch_size:
                    attempted += len(pending)
                    stored += await self.keyframes.put_many(pending)
                    pending = []

        if pending:
            attempted += len(pending)
            stored += await self.keyframes.put_many(pending)

        if stored < attempted:
            raise StorageWriteError(f"Only {stored} of {attempted} keyframes were stored for {window}")
        logger.info(f"Stored {stored} keyframes for {window}")
        return stored
