"""
Ordered placement streams.

An event source yields one segment's placements in timestamp order;
stream_window stitches the segments of a catalog together into one
globally ordered stream for a query window.
"""

import logging
from abc import ABC, abstractmethod
from contextlib import aclosing
from datetime import datetime
from typing import AsyncIterator, Optional

from ..shared.errors import UpstreamReadError
from ..shared.protocol import PlacementEvent
from ..shared.time_range import DateTimeRange
from ..storage.database import InputDatabase
from ..storage.partitions import PartitionCatalog

logger = logging.getLogger(__name__)


class EventSource(ABC):
    """Abstract base class for placement sources."""

    @abstractmethod
    def stream(
        self,
        segment_id: str,
        window_start: datetime,
        window_end: datetime,
    ) -> AsyncIterator[PlacementEvent]:
        """
        Stream one segment's placements with window_start <= ts <= window_end,
        ascending by timestamp.
        """

    async def stream_window(
        self,
        catalog: PartitionCatalog,
        query: DateTimeRange,
    ) -> AsyncIterator[PlacementEvent]:
        """
        Stream every placement inside `query`, segment after segment.

        Raises:
            UpstreamReadError: if timestamps go backwards, which means the
                catalog or a segment table is out of order
        """
        last: Optional[datetime] = None

        for segment_id in catalog.segments_for(query):
            async with aclosing(self.stream(segment_id, query.start, query.end)) as events:
                async for event in events:
                    if not query.contains(event.timestamp):
                        continue
                    if last is not None and event.timestamp < last:
                        raise UpstreamReadError(
                            f"Placement at {event.timestamp.isoformat()} in {segment_id} "
                            f"arrived after {last.isoformat()}"
                        )
                    last = event.timestamp
                    yield event


class DatabaseEventSource(EventSource):
    """Reads placements from the segment tables of an InputDatabase."""

    def __init__(self, database: InputDatabase):
        self.database = database

    async def stream(
        self,
        segment_id: str,
        window_start: datetime,
        window_end: datetime,
    ) -> AsyncIterator[PlacementEvent]:
        async with self.database.read_transaction() as db:
            rows = self.database.stream_segment(db, segment_id, window_start, window_end)
            async with aclosing(rows):
                async for event in rows:
                    yield event
