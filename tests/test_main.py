"""
Tests for the command line application.
"""

import pytest
from datetime import datetime, timedelta

from canvas_archive.main import (
    CanvasArchiveApp,
    build_parser,
    parse_moment,
    parse_segment_numbers,
)


class TestArgumentParsing:
    """Tests for CLI argument helpers."""

    @pytest.mark.parametrize("text,expected", [
        ("3", [3]),
        ("0-3", [0, 1, 2, 3]),
        ("1,4,7-9", [1, 4, 7, 8, 9]),
        ("", []),
    ])
    def test_segment_numbers(self, text, expected):
        assert parse_segment_numbers(text) == expected

    def test_moment_naive(self):
        assert parse_moment("2022-04-02T16:25:00") == datetime(2022, 4, 2, 16, 25)

    def test_moment_with_offset_becomes_utc(self):
        assert parse_moment("2022-04-02T18:25:00+02:00") == datetime(2022, 4, 2, 16, 25)

    def test_timelapse_arguments(self):
        args = build_parser().parse_args([
            "timelapse",
            "--start", "2022-04-01T13:00:00",
            "--end", "2022-04-01T14:00:00",
            "--interval", "30",
            "--scale", "2",
        ])
        assert args.command == "timelapse"
        assert args.end - args.start == timedelta(hours=1)
        assert args.interval == 30.0
        assert args.scale == 2
        assert args.name == "timelapse"

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


class TestConfig:
    """Tests for configuration loading."""

    def test_missing_file_uses_defaults(self, tmp_path):
        app = CanvasArchiveApp(str(tmp_path / "missing.yaml"))
        assert app.database_config.db_path == "canvas.db"
        assert app.replay_config.interval == timedelta(seconds=60)

    def test_sections_are_applied(self, tmp_path):
        config = tmp_path / "config.yaml"
        config.write_text(
            "database:\n"
            f"  db_path: {tmp_path / 'places.db'}\n"
            "  fetch_size: 100\n"
            "keyframes:\n"
            f"  keyframes_dir: {tmp_path / 'kf'}\n"
            "replay:\n"
            "  interval_seconds: 15\n"
            "  scale: 3\n"
            "timelapse:\n"
            "  fps: 24\n"
        )
        app = CanvasArchiveApp(str(config))

        assert app.database_config.db_path == str(tmp_path / "places.db")
        assert app.database_config.fetch_size == 100
        assert app.keyframe_config.keyframes_dir == str(tmp_path / "kf")
        assert app.replay_config.scale == 3
        assert app.replay_config.interval == timedelta(seconds=15)
        assert app.timelapse_config.fps == 24
