"""
Canvas reconstruction.

Holds one pixel buffer sized for the largest canvas and applies
placements to it in order. Snapshots are copies cropped to the canvas
size in force at the snapshot time.
"""

import logging
from datetime import datetime
from typing import Iterable, Optional, Sequence

import numpy as np

from ..shared.metrics import ReplayMetricsCollector
from ..shared.protocol import Color, Keyframe, PlacementEvent, WHITE, Rect
from .geometry import CANVAS_EPOCHS, CanvasEpoch, geometry_at, max_canvas_size

logger = logging.getLogger(__name__)


class CanvasReconstructor:
    """
    Mutable canvas state owned by a single replay.

    Load a keyframe, apply placements in timestamp order, then take
    snapshots. Placements that fall partly outside the buffer are
    clipped; the first one is logged, all of them are counted.
    """

    def __init__(
        self,
        background: Color = WHITE,
        epochs: Sequence[CanvasEpoch] = CANVAS_EPOCHS,
        metrics: Optional[ReplayMetricsCollector] = None,
    ):
        self.background = background
        self.epochs = tuple(epochs)
        self.metrics = metrics

        width, height = max_canvas_size(self.epochs)
        self._bounds = Rect(0, 0, width, height)
        self._pixels = np.empty((height, width, 3), dtype=np.uint8)
        self._pixels[:] = background
        self._current_time: Optional[datetime] = None
        self._clip_warned = False

    @property
    def current_time(self) -> Optional[datetime]:
        """Timestamp of the keyframe or latest placement applied."""
        return self._current_time

    @property
    def size(self):
        return (self._bounds.width, self._bounds.height)

    def load_keyframe(self, keyframe: Keyframe):
        """Reset the buffer to a keyframe. Smaller keyframes fill the top-left corner."""
        self._pixels[:] = self.background
        height = min(keyframe.height, self._bounds.height)
        width = min(keyframe.width, self._bounds.width)
        self._pixels[:height, :width] = keyframe.pixels[:height, :width]
        self._current_time = keyframe.timestamp

    def apply(self, event: PlacementEvent):
        """Write one placement's color over its rectangle."""
        rect = event.rect
        visible = rect.intersection(self._bounds)

        if visible != rect:
            if self.metrics:
                self.metrics.record_event_clipped()
            if not self._clip_warned:
                logger.warning(
                    f"Placement at {event.timestamp.isoformat()} covering "
                    f"({rect.x}, {rect.y}, {rect.width}x{rect.height}) is outside the canvas, clipping"
                )
                self._clip_warned = True

        if not visible.is_empty:
            self._pixels[visible.y:visible.bottom, visible.x:visible.right] = event.color

        self._current_time = event.timestamp
        if self.metrics:
            self.metrics.record_event_applied()

    def apply_all(self, events: Iterable[PlacementEvent]) -> int:
        """Apply placements in order. Returns how many were applied."""
        count = 0
        for event in events:
            self.apply(event)
            count += 1
        return count

    def snapshot(self, at_time: datetime, scale: int = 1) -> np.ndarray:
        """
        Copy the canvas as it looks at `at_time`.

        Args:
            at_time: Selects the canvas size in force
            scale: Integer upscale factor, each pixel becomes a scale x scale block

        Returns:
            Read-only H x W x 3 RGB array
        """
        if scale < 1:
            raise ValueError(f"Scale must be a positive integer, got {scale}")

        epoch = geometry_at(at_time, self.epochs)
        frame = self._pixels[:epoch.height, :epoch.width].copy()
        if scale > 1:
            frame = np.repeat(np.repeat(frame, scale, axis=0), scale, axis=1)
        frame.setflags(write=False)
        return frame
