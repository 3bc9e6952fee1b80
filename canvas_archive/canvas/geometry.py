"""
Canvas geometry over time.

The canvas opens at 1000x1000 and grows twice:
- 2022-04-02 16:25 to 2000x1000 (right half added)
- 2022-04-03 19:04 to 2000x2000 (bottom half added)

Pixels are addressed from the top-left corner, so every earlier
canvas is a top-left sub-rectangle of every later one.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Sequence, Tuple

from ..shared.time_range import DateTimeRange

logger = logging.getLogger(__name__)

CANVAS_START = datetime(2022, 4, 1, 12, 40)
FIRST_EXPANSION = datetime(2022, 4, 2, 16, 25)
SECOND_EXPANSION = datetime(2022, 4, 3, 19, 4)


@dataclass(frozen=True)
class CanvasEpoch:
    """Canvas dimensions in force from `start` until the next epoch."""
    start: datetime
    width: int
    height: int

    @property
    def size(self) -> Tuple[int, int]:
        return (self.width, self.height)


CANVAS_EPOCHS: Tuple[CanvasEpoch, ...] = (
    CanvasEpoch(CANVAS_START, 1000, 1000),
    CanvasEpoch(FIRST_EXPANSION, 2000, 1000),
    CanvasEpoch(SECOND_EXPANSION, 2000, 2000),
)


def geometry_at(moment: datetime, epochs: Sequence[CanvasEpoch] = CANVAS_EPOCHS) -> CanvasEpoch:
    """
    Get the epoch in force at a moment.

    Moments before the first epoch get the first epoch's size; an
    expansion takes effect exactly at its start time.
    """
    current = epochs[0]
    for epoch in epochs[1:]:
        if moment >= epoch.start:
            current = epoch
        else:
            break
    return current


def max_canvas_size(epochs: Sequence[CanvasEpoch] = CANVAS_EPOCHS) -> Tuple[int, int]:
    """Largest (width, height) over all epochs."""
    return (max(e.width for e in epochs), max(e.height for e in epochs))


def geometry_for_range(window: DateTimeRange, epochs: Sequence[CanvasEpoch] = CANVAS_EPOCHS) -> CanvasEpoch:
    """The largest geometry reached within a window (the one at its end)."""
    return geometry_at(window.end, epochs)
