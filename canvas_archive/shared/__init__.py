from .errors import (
    CanvasArchiveError,
    InvalidRangeError,
    UpstreamReadError,
    UnsupportedPlatformError,
    FeedFormatError,
    StorageWriteError,
)
from .protocol import (
    Color,
    WHITE,
    Rect,
    PlacementEvent,
    Keyframe,
    color_from_hex,
    color_from_argb,
    color_to_argb,
)
from .time_range import DateTimeRange, RangeAccumulator

__all__ = [
    "CanvasArchiveError",
    "InvalidRangeError",
    "UpstreamReadError",
    "UnsupportedPlatformError",
    "FeedFormatError",
    "StorageWriteError",
    "Color",
    "WHITE",
    "Rect",
    "PlacementEvent",
    "Keyframe",
    "color_from_hex",
    "color_from_argb",
    "color_to_argb",
    "DateTimeRange",
    "RangeAccumulator",
]
