#!/usr/bin/env python3
"""
Canvas Archive - Command Line Application

Imports the raw placement feed, builds the segment tables and
keyframes, and renders snapshots and timelapses of the canvas.
"""

import argparse
import asyncio
import logging
import signal
import sys
from contextlib import aclosing
from datetime import datetime, timedelta
from pathlib import Path
from typing import List, Optional

import yaml

from canvas_archive.canvas import geometry_for_range
from canvas_archive.ingestion import iter_feed_segments
from canvas_archive.output import TimelapseConfig, TimelapseWriter, save_png
from canvas_archive.replay import CanvasVisualizer, DatabaseEventSource, ReplayConfig
from canvas_archive.shared import CanvasArchiveError, DateTimeRange
from canvas_archive.shared.metrics import ReplayMetricsCollector
from canvas_archive.storage import (
    DEFAULT_CATALOG,
    DatabaseConfig,
    InputDatabase,
    KeyframeConfig,
    KeyframeStore,
)

logger = logging.getLogger(__name__)


def parse_segment_numbers(text: str) -> List[int]:
    """Parse "3", "0-78" or "1,4,7-9" into a list of feed segment numbers."""
    numbers = []
    for part in text.split(","):
        part = part.strip()
        if not part:
            continue
        if "-" in part:
            first, last = part.split("-", 1)
            numbers.extend(range(int(first), int(last) + 1))
        else:
            numbers.append(int(part))
    return numbers


def parse_moment(text: str) -> datetime:
    """Parse an ISO 8601 timestamp; offsets are converted to naive UTC."""
    moment = datetime.fromisoformat(text)
    if moment.tzinfo is not None:
        moment = (moment - moment.utcoffset()).replace(tzinfo=None)
    return moment


class CanvasArchiveApp:
    """Main application: wires config into storage, replay and output."""

    def __init__(self, config_path: str):
        self.config = self._load_config(config_path)
        self._setup_logging()

        self.database_config = DatabaseConfig.from_dict(self.config.get("database", {}))
        self.keyframe_config = KeyframeConfig.from_dict(self.config.get("keyframes", {}))
        self.replay_config = ReplayConfig.from_dict(self.config.get("replay", {}))
        self.timelapse_config = TimelapseConfig.from_dict(self.config.get("timelapse", {}))

        self.metrics = ReplayMetricsCollector(run_id=self.config.get("run_id", "cli"))
        self.database = InputDatabase(self.database_config, DEFAULT_CATALOG, self.metrics)
        self.keyframes = KeyframeStore(self.database, self.keyframe_config, metrics=self.metrics)
        self.visualizer = CanvasVisualizer(
            self.keyframes,
            DatabaseEventSource(self.database),
            DEFAULT_CATALOG,
            self.metrics,
        )

    def _load_config(self, config_path: str) -> dict:
        """Load configuration from YAML file."""
        config_file = Path(config_path)

        if not config_file.exists():
            logger.warning(f"Config file not found: {config_path}, using defaults")
            return self._default_config()

        with open(config_file) as f:
            config = yaml.safe_load(f) or {}

        logger.info(f"Loaded configuration from {config_path}")
        return config

    def _default_config(self) -> dict:
        """Return default configuration."""
        return {
            "database": {"db_path": "canvas.db"},
            "keyframes": {"keyframes_dir": "keyframes"},
            "replay": {"interval_seconds": 60, "scale": 1},
            "timelapse": {"output_dir": "timelapses", "fps": 30},
            "logging": {"level": "INFO"},
        }

    def _setup_logging(self):
        """Configure logging based on config."""
        log_config = self.config.get("logging", {})
        level = getattr(logging, log_config.get("level", "INFO").upper())

        logging.basicConfig(
            level=level,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            handlers=[logging.StreamHandler()],
        )

        # Add file handler if configured
        log_file = log_config.get("file")
        if log_file:
            log_path = Path(log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)

            from logging.handlers import RotatingFileHandler

            handler = RotatingFileHandler(
                log_file,
                maxBytes=log_config.get("max_size_mb", 50) * 1024 * 1024,
                backupCount=log_config.get("backup_count", 5),
            )
            handler.setFormatter(
                logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
            )
            logging.getLogger().addHandler(handler)

    def _interval(self, seconds: Optional[float]) -> timedelta:
        return timedelta(seconds=seconds) if seconds else self.replay_config.interval

    async def import_feed(self, feed_dir: str, segments: str) -> int:
        await self.database.initialize()
        events = iter_feed_segments(Path(feed_dir), parse_segment_numbers(segments))
        count = await self.database.add_entries(events)
        print(f"Imported {count} placements")
        return count

    async def build_index(self) -> int:
        await self.database.initialize()
        tables = await self.database.create_segment_tables()
        await self.database.create_segment_indexes()
        print(f"Built and indexed {tables} segment tables")
        return tables

    async def count(self) -> int:
        total = await self.database.get_total_count()
        print(total)
        return total

    async def time_range(self) -> Optional[DateTimeRange]:
        span = await self.database.get_timestamp_range()
        print(span if span else "No placements stored")
        return span

    async def snapshot(self, at: datetime, output: str, scale: Optional[int]) -> bool:
        pixels = await self.visualizer.image_at(at, scale or self.replay_config.scale)
        ok = await asyncio.to_thread(save_png, pixels, output)
        if ok:
            print(f"Saved canvas at {at.isoformat()} to {output}")
        return ok

    async def keyframes_for(self, window: DateTimeRange, interval: Optional[float]) -> int:
        await self.database.initialize()
        seconds = interval or self.replay_config.keyframe_interval_seconds
        stored = await self.visualizer.build_keyframes(window, timedelta(seconds=seconds))
        print(f"Stored {stored} keyframes")
        return stored

    async def timelapse(
        self,
        window: DateTimeRange,
        name: str,
        interval: Optional[float],
        scale: Optional[int],
    ):
        scale = scale or self.replay_config.scale
        epoch = geometry_for_range(window)
        writer = TimelapseWriter(self.timelapse_config)

        frames = self.visualizer.snapshots(
            window,
            self._interval(interval),
            scale=scale,
            emit_start=self.replay_config.emit_start,
        )
        async with aclosing(frames):
            result = await writer.write(frames, name, size=(epoch.width * scale, epoch.height * scale))
        logger.info(f"Timelapse details: {result.to_dict()}")
        print(f"Wrote {result.frame_count} frames to {result.path}")
        return result


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Canvas Archive")
    parser.add_argument(
        "-c", "--config",
        default="config/canvas-archive.yaml",
        help="Path to configuration file",
    )
    parser.add_argument(
        "-d", "--debug",
        action="store_true",
        help="Enable debug logging",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    cmd = commands.add_parser("import", help="Import gzipped feed files into the database")
    cmd.add_argument("--feed-dir", required=True, help="Directory holding inputs_NN.csv.gzip files")
    cmd.add_argument("--segments", default="0-78", help='Feed file numbers, e.g. "0-78" or "1,4,7-9"')

    commands.add_parser("index", help="Build and index the per-segment tables")
    commands.add_parser("count", help="Print the number of stored placements")
    commands.add_parser("range", help="Print the span of stored timestamps")

    cmd = commands.add_parser("snapshot", help="Render the canvas at one moment")
    cmd.add_argument("--at", required=True, type=parse_moment, help="ISO 8601 timestamp (UTC)")
    cmd.add_argument("--output", required=True, help="PNG file to write")
    cmd.add_argument("--scale", type=int, help="Integer upscale factor")

    for name, help_text in (
        ("keyframes", "Store keyframes across a window"),
        ("timelapse", "Render a timelapse video of a window"),
    ):
        cmd = commands.add_parser(name, help=help_text)
        cmd.add_argument("--start", required=True, type=parse_moment, help="Window start (UTC)")
        cmd.add_argument("--end", required=True, type=parse_moment, help="Window end (UTC)")
        cmd.add_argument("--interval", type=float, help="Seconds between frames")
        if name == "timelapse":
            cmd.add_argument("--name", default="timelapse", help="Output file name without extension")
            cmd.add_argument("--scale", type=int, help="Integer upscale factor")

    return parser


async def run_command(app: CanvasArchiveApp, args: argparse.Namespace):
    if args.command == "import":
        return await app.import_feed(args.feed_dir, args.segments)
    if args.command == "index":
        return await app.build_index()
    if args.command == "count":
        return await app.count()
    if args.command == "range":
        return await app.time_range()
    if args.command == "snapshot":
        return await app.snapshot(args.at, args.output, args.scale)

    window = DateTimeRange(args.start, args.end)
    if args.command == "keyframes":
        return await app.keyframes_for(window, args.interval)
    return await app.timelapse(window, args.name, args.interval, args.scale)


async def run_cancellable(app: CanvasArchiveApp, args: argparse.Namespace) -> int:
    """Run one command; SIGINT/SIGTERM cancel it. Returns the exit code."""
    loop = asyncio.get_running_loop()
    task = asyncio.ensure_future(run_command(app, args))

    # Handle signals
    def signal_handler(signum, frame):
        logger.info(f"Received signal {signum}, cancelling {args.command}")
        loop.call_soon_threadsafe(task.cancel)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        await task
    except asyncio.CancelledError:
        logger.warning(f"{args.command} cancelled")
        return 130
    except CanvasArchiveError as e:
        logger.error(f"{args.command} failed: {e}")
        return 1
    finally:
        app.metrics.log_summary()
    return 0


def main():
    parser = build_parser()
    args = parser.parse_args()

    app = CanvasArchiveApp(args.config)

    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    sys.exit(asyncio.run(run_cancellable(app, args)))


if __name__ == "__main__":
    main()
