"""
Raw placement feed parser.

The feed ships as gzip-compressed CSV files named inputs_NN.csv.gzip
(NN = 00..78) with the header:

    timestamp,user_id,pixel_color,coordinate

- timestamp:   "2022-04-04 00:53:51.577 UTC" (0-3 fractional digits)
- user_id:     base64 of the hashed user id
- pixel_color: "#RRGGBB" or "#RRGGBBAA"
- coordinate:  "x,y" or, for moderator rectangles, "x1,y1,x2,y2"
               with both corners inclusive
"""

import base64
import binascii
import csv
import gzip
import logging
from datetime import datetime
from pathlib import Path
from typing import Iterable, Iterator, Optional, Tuple

from ..shared.errors import FeedFormatError
from ..shared.protocol import Color, PlacementEvent, color_from_hex

logger = logging.getLogger(__name__)

LAST_FEED_SEGMENT = 78
FEED_FILE_FORMAT = "inputs_{:02d}.csv.gzip"
FEED_COLUMNS = ("timestamp", "user_id", "pixel_color", "coordinate")

INT16_MIN = -32768
INT16_MAX = 32767


def parse_timestamp(text: str) -> datetime:
    """Parse a feed timestamp into a naive UTC datetime."""
    value = text.strip()
    if not value.endswith(" UTC"):
        raise FeedFormatError(f"Timestamp without UTC suffix: {text!r}")
    value = value[:-4]

    fmt = "%Y-%m-%d %H:%M:%S.%f" if "." in value else "%Y-%m-%d %H:%M:%S"
    try:
        return datetime.strptime(value, fmt)
    except ValueError as e:
        raise FeedFormatError(f"Invalid timestamp {text!r}: {e}") from e


def parse_coordinate(text: str) -> Tuple[int, int, int, int]:
    """
    Parse a feed coordinate.

    Returns:
        (x, y, width, height); single pixels have width = height = 1
    """
    parts = [p.strip() for p in text.strip().strip('"').split(",")]
    if len(parts) not in (2, 4):
        raise FeedFormatError(f"Invalid coordinate: {text!r}")

    try:
        values = [int(p) for p in parts]
    except ValueError as e:
        raise FeedFormatError(f"Invalid coordinate: {text!r}") from e

    if any(v < INT16_MIN or v > INT16_MAX for v in values):
        raise FeedFormatError(f"Coordinate out of range: {text!r}")

    if len(values) == 2:
        return values[0], values[1], 1, 1

    left, top, right, bottom = values
    if right < left or bottom < top:
        raise FeedFormatError(f"Rectangle corners out of order: {text!r}")
    return left, top, right - left + 1, bottom - top + 1


def parse_color(text: str) -> Color:
    try:
        return color_from_hex(text.strip())
    except ValueError as e:
        raise FeedFormatError(str(e)) from e


def parse_actor_hash(text: str) -> bytes:
    try:
        return base64.b64decode(text.strip(), validate=True)
    except (binascii.Error, ValueError) as e:
        raise FeedFormatError(f"Invalid user id {text!r}") from e


def parse_row(row: dict, row_number: Optional[int] = None) -> PlacementEvent:
    """Convert one CSV row (as read by csv.DictReader) into a placement."""
    try:
        missing = [column for column in FEED_COLUMNS if not row.get(column)]
        if missing:
            raise FeedFormatError(f"Missing columns: {', '.join(missing)}")

        x, y, width, height = parse_coordinate(row["coordinate"])
        return PlacementEvent(
            timestamp=parse_timestamp(row["timestamp"]),
            x=x,
            y=y,
            width=width,
            height=height,
            color=parse_color(row["pixel_color"]),
            actor_hash=parse_actor_hash(row["user_id"]),
        )
    except FeedFormatError as e:
        if row_number is None or e.row_number is not None:
            raise
        raise FeedFormatError(str(e), row_number) from e


def iter_feed_file(path: Path) -> Iterator[PlacementEvent]:
    """Stream placements from one gzip-compressed feed file."""
    logger.info(f"Processing feed file {path}")
    count = 0

    with gzip.open(path, "rt", encoding="utf-8", newline="") as f:
        reader = csv.DictReader(f)
        # Data rows start on line 2
        for row_number, row in enumerate(reader, start=2):
            if not any(row.values()):
                continue
            yield parse_row(row, row_number)
            count += 1

    logger.info(f"Read {count} placements from {path.name}")


def feed_file_path(directory: Path, number: int) -> Path:
    if number < 0 or number > LAST_FEED_SEGMENT:
        raise ValueError(f"The feed has no segment {number} (0-{LAST_FEED_SEGMENT})")
    return Path(directory) / FEED_FILE_FORMAT.format(number)


def iter_feed_segments(directory: Path, numbers: Iterable[int]) -> Iterator[PlacementEvent]:
    """Stream placements from several numbered feed files, in the order given."""
    for number in numbers:
        path = feed_file_path(directory, number)
        if not path.exists():
            logger.warning(f"Feed file {path} not found, skipping")
            continue
        yield from iter_feed_file(path)
