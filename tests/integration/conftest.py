"""
Shared fixtures for integration tests.
"""

import asyncio
import pytest
from datetime import timedelta

from canvas_archive.shared.metrics import MetricsRegistry, ReplayMetricsCollector
from canvas_archive.storage.database import DatabaseConfig, InputDatabase
from canvas_archive.storage.keyframes import KeyframeConfig, KeyframeStore
from canvas_archive.storage.partitions import build_catalog

from factories import T0


@pytest.fixture
def catalog():
    """Four 10-second segments starting at T0."""
    return build_catalog(start=T0, step=timedelta(seconds=10), count=4, prefix="seg")


@pytest.fixture
def metrics():
    return ReplayMetricsCollector(run_id="integration", registry=MetricsRegistry())


@pytest.fixture
def database(tmp_path, catalog, metrics):
    """An initialized SQLite database in a temporary directory."""
    config = DatabaseConfig(db_path=str(tmp_path / "canvas.db"), batch_size=3, fetch_size=2)
    db = InputDatabase(config, catalog, metrics)
    asyncio.run(db.initialize())
    return db


@pytest.fixture
def keyframe_store(tmp_path, database, metrics):
    return KeyframeStore(database, KeyframeConfig(keyframes_dir=str(tmp_path / "keyframes")), metrics=metrics)


@pytest.fixture
def loaded_database(database, sample_events):
    """A database holding sample_events, with segment tables built."""
    async def _load():
        await database.add_entries(sample_events)
        await database.create_segment_tables()
        await database.create_segment_indexes()

    asyncio.run(_load())
    return database
