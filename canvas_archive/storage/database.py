"""
Placement log storage.

Stores placements in SQLite with one master table and one
time-sharded table per catalog segment, and streams them back in
timestamp order for replay.
"""

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from itertools import islice
from typing import AsyncIterator, Iterable, Iterator, List, Optional, Tuple
import logging

import aiosqlite

from ..shared.errors import UpstreamReadError
from ..shared.metrics import ReplayMetricsCollector
from ..shared.protocol import PlacementEvent, color_from_argb, color_to_argb
from ..shared.time_range import DateTimeRange, RangeAccumulator
from .partitions import DEFAULT_CATALOG, PartitionCatalog

logger = logging.getLogger(__name__)

# Timestamps are stored as integer microseconds since this instant (UTC)
EPOCH = datetime(1970, 1, 1)
MICROSECOND = timedelta(microseconds=1)

EVENT_COLUMNS = "timestamp, actor_hash, x, y, width, height, color"

SCHEMA = """
    CREATE TABLE IF NOT EXISTS inputs (
        timestamp INTEGER NOT NULL,
        actor_hash BLOB NOT NULL,
        x INTEGER NOT NULL,
        y INTEGER NOT NULL,
        width INTEGER NOT NULL DEFAULT 1,
        height INTEGER NOT NULL DEFAULT 1,
        color INTEGER NOT NULL
    );

    CREATE TABLE IF NOT EXISTS keyframes (
        timestamp INTEGER PRIMARY KEY,
        image_path TEXT NOT NULL
    );
"""


def to_microseconds(moment: datetime) -> int:
    """Convert a naive UTC datetime to storage form."""
    return (moment - EPOCH) // MICROSECOND


def from_microseconds(value: int) -> datetime:
    """Convert a stored timestamp back to a naive UTC datetime."""
    return EPOCH + timedelta(microseconds=value)


def _event_to_row(event: PlacementEvent) -> Tuple:
    return (
        to_microseconds(event.timestamp),
        event.actor_hash,
        event.x,
        event.y,
        event.width,
        event.height,
        color_to_argb(event.color),
    )


def _row_to_event(row) -> PlacementEvent:
    return PlacementEvent(
        timestamp=from_microseconds(row[0]),
        actor_hash=bytes(row[1]),
        x=row[2],
        y=row[3],
        width=row[4],
        height=row[5],
        color=color_from_argb(row[6]),
    )


def _range_clause(window: DateTimeRange) -> Tuple[str, List[int]]:
    """SQL condition on the timestamp column matching a range's edges."""
    lower = ">=" if window.start_inclusive else ">"
    upper = "<=" if window.end_inclusive else "<"
    return (
        f"timestamp {lower} ? AND timestamp {upper} ?",
        [to_microseconds(window.start), to_microseconds(window.end)],
    )


@dataclass
class DatabaseConfig:
    """Storage settings, the `database` section of the config file."""
    db_path: str = "canvas.db"
    batch_size: int = 10000       # rows per executemany on import
    fetch_size: int = 5000        # rows per fetchmany on replay
    progress_interval: int = 1000000  # rows between progress log lines

    @classmethod
    def from_dict(cls, data: dict) -> "DatabaseConfig":
        return cls(
            db_path=data.get("db_path", cls.db_path),
            batch_size=data.get("batch_size", cls.batch_size),
            fetch_size=data.get("fetch_size", cls.fetch_size),
            progress_interval=data.get("progress_interval", cls.progress_interval),
        )


class InputDatabase:
    """
    SQLite-backed placement log.

    Features:
    - Batched import into the master table
    - Per-segment tables and timestamp indexes built from the catalog
    - Scoped read transactions for replay streams
    - Count and time-span scans over the whole log
    """

    def __init__(
        self,
        config: Optional[DatabaseConfig] = None,
        catalog: PartitionCatalog = DEFAULT_CATALOG,
        metrics: Optional[ReplayMetricsCollector] = None,
    ):
        self.config = config or DatabaseConfig()
        self.catalog = catalog
        self.metrics = metrics

    async def _get_db(self) -> aiosqlite.Connection:
        try:
            return await aiosqlite.connect(self.config.db_path)
        except (aiosqlite.Error, OSError) as e:
            raise UpstreamReadError(f"Cannot open database {self.config.db_path}: {e}") from e

    @asynccontextmanager
    async def session(self) -> AsyncIterator[aiosqlite.Connection]:
        """Open a connection that is closed on every exit path."""
        db = await self._get_db()
        try:
            yield db
        finally:
            await db.close()

    @asynccontextmanager
    async def read_transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """Open a connection holding one read transaction for a consistent view."""
        async with self.session() as db:
            try:
                await db.execute("BEGIN")
            except aiosqlite.Error as e:
                raise UpstreamReadError(f"Cannot start read transaction: {e}") from e
            try:
                yield db
            finally:
                await db.rollback()

    async def initialize(self):
        """Create the master and keyframe tables."""
        async with self.session() as db:
            # WAL lets keyframe writes commit while replay streams hold read transactions
            await db.execute("PRAGMA journal_mode=WAL")
            await db.executescript(SCHEMA)
            await db.commit()
        logger.info(f"Database initialized at {self.config.db_path}")

    def _next_batch(self, iterator: Iterator[PlacementEvent]) -> List[PlacementEvent]:
        return list(islice(iterator, self.config.batch_size))

    async def add_entries(self, events: Iterable[PlacementEvent]) -> int:
        """
        Import placements into the master table in one transaction.

        Args:
            events: Placements in any order

        Returns:
            Number of rows inserted, 0 if the import failed and was rolled back
        """
        inserted = 0
        unrouted = 0
        committed = False
        iterator = iter(events)

        async with self.session() as db:
            try:
                await db.execute("BEGIN")
                while True:
                    # Parsing the feed is blocking work, keep it off the event loop
                    batch = await asyncio.to_thread(self._next_batch, iterator)
                    if not batch:
                        break
                    unrouted += sum(1 for e in batch if self.catalog.segment_for(e.timestamp) is None)
                    await db.executemany(
                        f"INSERT INTO inputs ({EVENT_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
                        [_event_to_row(e) for e in batch],
                    )
                    inserted += len(batch)
                    logger.debug(f"Imported {inserted} rows so far")
                await db.commit()
                committed = True
            except aiosqlite.Error as e:
                logger.error(f"Failed to import placements: {e}")
                return 0
            finally:
                if not committed:
                    await db.rollback()
                    logger.warning(f"Import rolled back after {inserted} rows")

        if unrouted:
            logger.warning(f"{unrouted} imported placements fall outside every segment and will not be replayed")
        logger.info(f"Imported {inserted} placements")
        return inserted

    async def create_segment_tables(self) -> int:
        """
        Copy the master table into one table per catalog segment.

        Returns:
            Number of segment tables created
        """
        created = 0
        async with self.session() as db:
            for mapping in self.catalog:
                clause, params = _range_clause(mapping.range)
                await db.execute(f"DROP TABLE IF EXISTS {mapping.segment_id}")
                await db.execute(
                    f"CREATE TABLE {mapping.segment_id} AS "
                    f"SELECT {EVENT_COLUMNS} FROM inputs WHERE {clause} ORDER BY timestamp, rowid",
                    params,
                )
                created += 1
                logger.debug(f"Created segment table {mapping.segment_id}")
            await db.commit()
        logger.info(f"Created {created} segment tables")
        return created

    async def create_segment_indexes(self) -> int:
        """Index every segment table on timestamp."""
        created = 0
        async with self.session() as db:
            for segment_id in self.catalog.segment_ids:
                await db.execute(
                    f"CREATE INDEX IF NOT EXISTS idx_{segment_id}_timestamp "
                    f"ON {segment_id}(timestamp)"
                )
                created += 1
            await db.commit()
        logger.info(f"Indexed {created} segment tables")
        return created

    async def stream_segment(
        self,
        db: aiosqlite.Connection,
        segment_id: str,
        window_start: datetime,
        window_end: datetime,
    ) -> AsyncIterator[PlacementEvent]:
        """
        Stream one segment's placements with window_start <= ts <= window_end.

        Rows are fetched in pages so memory stays bounded by fetch_size.
        """
        if segment_id not in self.catalog.segment_ids:
            raise ValueError(f"Unknown segment: {segment_id}")

        try:
            cursor = await db.execute(
                f"SELECT {EVENT_COLUMNS} FROM {segment_id} "
                f"WHERE timestamp >= ? AND timestamp <= ? ORDER BY timestamp, rowid",
                (to_microseconds(window_start), to_microseconds(window_end)),
            )
        except aiosqlite.Error as e:
            raise UpstreamReadError(f"Cannot read segment {segment_id}: {e}") from e

        if self.metrics:
            self.metrics.record_segment_scanned(segment_id)

        try:
            while True:
                try:
                    rows = await cursor.fetchmany(self.config.fetch_size)
                except aiosqlite.Error as e:
                    raise UpstreamReadError(f"Read from {segment_id} failed: {e}") from e
                if not rows:
                    break
                for row in rows:
                    yield _row_to_event(row)
        finally:
            await cursor.close()

    async def get_all_entries(self) -> AsyncIterator[PlacementEvent]:
        """Stream every placement, segment by segment, in timestamp order."""
        async with self.read_transaction() as db:
            for mapping in self.catalog:
                rows = self.stream_segment(db, mapping.segment_id, mapping.range.start, mapping.range.end)
                try:
                    async for event in rows:
                        if mapping.range.contains(event.timestamp):
                            yield event
                finally:
                    await rows.aclose()

    async def get_total_count(self) -> int:
        """Number of placements in the master table."""
        async with self.session() as db:
            try:
                cursor = await db.execute("SELECT COUNT(*) FROM inputs")
                row = await cursor.fetchone()
            except aiosqlite.Error as e:
                raise UpstreamReadError(f"Cannot count placements: {e}") from e
        return row[0]

    async def get_timestamp_range(self) -> Optional[DateTimeRange]:
        """
        Scan the master table for the earliest and latest placement.

        Returns:
            Inclusive range over all timestamps, None if the table is empty
        """
        accumulator = RangeAccumulator()
        scanned = 0

        async with self.read_transaction() as db:
            try:
                cursor = await db.execute("SELECT timestamp FROM inputs")
                while True:
                    rows = await cursor.fetchmany(self.config.fetch_size)
                    if not rows:
                        break
                    for (value,) in rows:
                        accumulator.extend(from_microseconds(value))
                        scanned += 1
                        if scanned % self.config.progress_interval == 0:
                            logger.info(f"Scanned {scanned} rows, span so far {accumulator.range}")
                await cursor.close()
            except aiosqlite.Error as e:
                raise UpstreamReadError(f"Cannot scan timestamps: {e}") from e

        logger.info(f"Scanned {scanned} rows in total")
        return accumulator.range
