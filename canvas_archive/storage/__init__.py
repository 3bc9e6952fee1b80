from .partitions import SegmentMapping, PartitionCatalog, DEFAULT_CATALOG, build_catalog
from .database import DatabaseConfig, InputDatabase, to_microseconds, from_microseconds
from .keyframes import KeyframeConfig, KeyframeStore

__all__ = [
    "SegmentMapping",
    "PartitionCatalog",
    "DEFAULT_CATALOG",
    "build_catalog",
    "DatabaseConfig",
    "InputDatabase",
    "to_microseconds",
    "from_microseconds",
    "KeyframeConfig",
    "KeyframeStore",
]
