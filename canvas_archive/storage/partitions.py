"""
Time-sharded segment catalog.

The placement log is split into tables that each cover a contiguous
two-hour window. A query window is routed to the tables whose windows
overlap it, in chronological order, so readers can concatenate the
per-table streams and still see events in timestamp order.
"""

import logging
import re
from bisect import bisect_right
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Iterator, List, Optional, Tuple

from ..shared.time_range import DateTimeRange

logger = logging.getLogger(__name__)

SEGMENT_ID_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

CATALOG_START = datetime(2022, 4, 1, 12, 0)
SEGMENT_LENGTH = timedelta(hours=2)
SEGMENT_COUNT = 43


@dataclass(frozen=True)
class SegmentMapping:
    """A segment table and the half-open time window it stores."""
    range: DateTimeRange
    segment_id: str


class PartitionCatalog:
    """
    Immutable, ordered list of segment mappings.

    Features:
    - Validates ordering, contiguity and table names at construction
    - Routes query windows to overlapping segments
    - Routes single instants to the segment that stores them
    """

    def __init__(self, mappings: Iterable[SegmentMapping]):
        self._mappings: Tuple[SegmentMapping, ...] = tuple(mappings)
        self._validate()
        self._starts = [mapping.range.start for mapping in self._mappings]

    def _validate(self):
        if not self._mappings:
            raise ValueError("Partition catalog needs at least one segment")

        seen = set()
        previous: Optional[SegmentMapping] = None
        for mapping in self._mappings:
            if not SEGMENT_ID_PATTERN.match(mapping.segment_id):
                raise ValueError(f"Unsafe segment id: {mapping.segment_id!r}")
            if mapping.segment_id in seen:
                raise ValueError(f"Duplicate segment id: {mapping.segment_id}")
            seen.add(mapping.segment_id)

            if previous is not None and mapping.range.start != previous.range.end:
                raise ValueError(
                    f"Segment {mapping.segment_id} starts at {mapping.range.start.isoformat()}, "
                    f"expected {previous.range.end.isoformat()} after {previous.segment_id}"
                )
            if previous is not None and previous.range.overlaps(mapping.range):
                raise ValueError(
                    f"Segments {previous.segment_id} and {mapping.segment_id} overlap"
                )
            previous = mapping

    def __iter__(self) -> Iterator[SegmentMapping]:
        return iter(self._mappings)

    def __len__(self) -> int:
        return len(self._mappings)

    @property
    def segment_ids(self) -> List[str]:
        return [mapping.segment_id for mapping in self._mappings]

    @property
    def covering_range(self) -> DateTimeRange:
        """The window spanned by the whole catalog."""
        first = self._mappings[0].range
        last = self._mappings[-1].range
        return DateTimeRange(first.start, last.end, first.start_inclusive, last.end_inclusive)

    def segments_for(self, query: DateTimeRange) -> List[str]:
        """
        Get the segments that may hold events inside a window.

        Args:
            query: Window to route

        Returns:
            Segment ids in chronological order, empty if the window lies
            outside the catalog
        """
        segments = []
        for mapping in self._mappings:
            if mapping.range.overlaps(query) and mapping.segment_id not in segments:
                segments.append(mapping.segment_id)
        return segments

    def segment_for(self, moment: datetime) -> Optional[str]:
        """Get the one segment storing a given instant, if any."""
        index = bisect_right(self._starts, moment) - 1
        # A boundary instant may belong to the earlier segment when the later one excludes its start
        for mapping in self._mappings[max(index - 1, 0):index + 1]:
            if mapping.range.contains(moment):
                return mapping.segment_id
        return None

    def range_of(self, segment_id: str) -> DateTimeRange:
        for mapping in self._mappings:
            if mapping.segment_id == segment_id:
                return mapping.range
        raise KeyError(segment_id)


def build_catalog(
    start: datetime = CATALOG_START,
    step: timedelta = SEGMENT_LENGTH,
    count: int = SEGMENT_COUNT,
    prefix: str = "inputs_part",
) -> PartitionCatalog:
    """Build a catalog of `count` back-to-back segments of equal length."""
    mappings = []
    for number in range(1, count + 1):
        segment_start = start + step * (number - 1)
        mappings.append(
            SegmentMapping(DateTimeRange(segment_start, segment_start + step), f"{prefix}{number}")
        )
    return PartitionCatalog(mappings)


# Built once at import; shared read-only by every reader
DEFAULT_CATALOG = build_catalog()
