from .geometry import (
    CANVAS_START,
    FIRST_EXPANSION,
    SECOND_EXPANSION,
    CANVAS_EPOCHS,
    CanvasEpoch,
    geometry_at,
    geometry_for_range,
    max_canvas_size,
)
from .reconstructor import CanvasReconstructor

__all__ = [
    "CANVAS_START",
    "FIRST_EXPANSION",
    "SECOND_EXPANSION",
    "CANVAS_EPOCHS",
    "CanvasEpoch",
    "geometry_at",
    "geometry_for_range",
    "max_canvas_size",
    "CanvasReconstructor",
]
