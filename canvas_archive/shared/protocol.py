"""
Shared data definitions for the canvas archive.
Defines placement events, keyframes and color conversions used by
storage, replay and output.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Tuple

import numpy as np

# (r, g, b), each 0-255
Color = Tuple[int, int, int]

WHITE: Color = (255, 255, 255)


def color_from_hex(text: str) -> Color:
    """
    Parse "#RRGGBB" or "#RRGGBBAA" into an RGB color.

    Alpha is discarded; the canvas is always opaque.
    """
    if len(text) not in (7, 9) or not text.startswith("#"):
        raise ValueError(f"Invalid hex color: {text!r}")
    r = int(text[1:3], 16)
    g = int(text[3:5], 16)
    b = int(text[5:7], 16)
    return (r, g, b)


def color_from_argb(value: int) -> Color:
    """Unpack a 32-bit ARGB integer (signed or unsigned) into an RGB color."""
    value &= 0xFFFFFFFF
    return ((value >> 16) & 0xFF, (value >> 8) & 0xFF, value & 0xFF)


def color_to_argb(color: Color) -> int:
    """Pack an RGB color into a signed 32-bit ARGB integer with full alpha."""
    r, g, b = color
    value = (0xFF << 24) | (r << 16) | (g << 8) | b
    return value - (1 << 32) if value & 0x80000000 else value


@dataclass(frozen=True)
class Rect:
    """An axis-aligned pixel rectangle, [x, x + width) x [y, y + height)."""
    x: int
    y: int
    width: int
    height: int

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    def intersection(self, other: "Rect") -> "Rect":
        """Return the overlapping part of two rectangles (possibly empty)."""
        x = max(self.x, other.x)
        y = max(self.y, other.y)
        right = min(self.right, other.right)
        bottom = min(self.bottom, other.bottom)
        return Rect(x, y, max(0, right - x), max(0, bottom - y))


@dataclass(frozen=True)
class PlacementEvent:
    """One rectangular pixel write. Most placements are a single pixel."""
    timestamp: datetime
    x: int
    y: int
    color: Color
    actor_hash: bytes = b""
    width: int = 1
    height: int = 1

    @property
    def rect(self) -> Rect:
        return Rect(self.x, self.y, self.width, self.height)


@dataclass(frozen=True)
class Keyframe:
    """A fully materialized canvas (H x W x 3 RGB) at a point in time."""
    pixels: np.ndarray = field(compare=False)
    timestamp: datetime
    image_path: Optional[str] = None

    @property
    def width(self) -> int:
        return self.pixels.shape[1]

    @property
    def height(self) -> int:
        return self.pixels.shape[0]
