"""
Shared test fixtures for Canvas Archive tests.
"""

import pytest
import sys
from datetime import timedelta
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from canvas_archive.canvas.geometry import CanvasEpoch

from factories import T0, RED, BLUE, BLACK, placement


@pytest.fixture
def t0():
    return T0


@pytest.fixture
def small_epochs():
    """A tiny canvas that grows the way the real one does."""
    return (
        CanvasEpoch(T0 - timedelta(hours=1), 4, 4),
        CanvasEpoch(T0 + timedelta(seconds=30), 8, 4),
        CanvasEpoch(T0 + timedelta(seconds=60), 8, 8),
    )


@pytest.fixture
def sample_events():
    """A few placements, including a burst at one instant and a rectangle."""
    return [
        placement(1, 0, 0, RED),
        placement(2, 1, 1, BLUE),
        placement(2, 1, 1, BLACK),
        placement(7, 2, 0, BLUE, width=2, height=2),
        placement(12, 3, 3, RED),
    ]


@pytest.fixture
def event_stream():
    """Turn a list of placements into an async iterator."""
    async def _stream(events):
        for event in events:
            yield event
    return _stream
