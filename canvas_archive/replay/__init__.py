from .event_source import EventSource, DatabaseEventSource
from .scheduler import Snapshot, SnapshotScheduler, timelapse_timestamps
from .visualizer import CanvasVisualizer, ReplayConfig

__all__ = [
    "EventSource",
    "DatabaseEventSource",
    "Snapshot",
    "SnapshotScheduler",
    "timelapse_timestamps",
    "CanvasVisualizer",
    "ReplayConfig",
]
