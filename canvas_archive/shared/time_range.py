"""
Half-open time ranges.

Used both as query keys (which placements to replay) and as routing keys
(which segment tables hold them).
"""

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Optional

from .errors import InvalidRangeError


@dataclass(frozen=True)
class DateTimeRange:
    """An interval between two datetimes with configurable edge inclusivity."""
    start: datetime
    end: datetime
    start_inclusive: bool = True
    end_inclusive: bool = False

    def __post_init__(self):
        if self.start > self.end:
            raise InvalidRangeError(
                f"Range end {self.end.isoformat()} is before its start {self.start.isoformat()}"
            )

    @property
    def length(self) -> timedelta:
        return self.end - self.start

    def contains(self, moment: datetime) -> bool:
        """Check if a datetime falls inside the range."""
        if moment < self.start or moment > self.end:
            return False
        if moment == self.start and not self.start_inclusive:
            return False
        if moment == self.end and not self.end_inclusive:
            return False
        return True

    def overlaps(self, other: "DateTimeRange") -> bool:
        """
        Check if two ranges share at least one instant.

        Ranges that only touch at a boundary overlap only when both of them
        include that boundary.
        """
        if other.start > self.end or self.start > other.end:
            return False
        if other.start == self.end and (not other.start_inclusive or not self.end_inclusive):
            return False
        if self.start == other.end and (not self.start_inclusive or not other.end_inclusive):
            return False
        return True

    def extended(self, moment: datetime) -> "DateTimeRange":
        """Return a range that also contains the given datetime."""
        if self.contains(moment):
            return self
        if moment < self.start:
            return replace(self, start=moment, start_inclusive=True)
        if moment > self.end:
            return replace(self, end=moment, end_inclusive=True)
        # On an excluded boundary; a zero-length range may need both edges
        return replace(
            self,
            start_inclusive=self.start_inclusive or moment == self.start,
            end_inclusive=self.end_inclusive or moment == self.end,
        )

    def __str__(self) -> str:
        return f"{self.start.isoformat(timespec='seconds')}-{self.end.isoformat(timespec='seconds')}"


class RangeAccumulator:
    """
    Grows a range to cover every datetime it is shown.

    Owned by a single scan; the range it hands out is immutable.
    """

    def __init__(self, initial: Optional[DateTimeRange] = None):
        self._range = initial

    @property
    def range(self) -> Optional[DateTimeRange]:
        return self._range

    def extend(self, moment: datetime) -> bool:
        """
        Extend the range so it contains the datetime.

        Returns:
            True if the range changed, False if it already contained it
        """
        if self._range is None:
            self._range = DateTimeRange(moment, moment, True, True)
            return True

        extended = self._range.extended(moment)
        if extended is self._range:
            return False

        self._range = extended
        return True
