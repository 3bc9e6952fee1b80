"""
Integration tests for timelapse and PNG output.
"""

import pytest
import numpy as np
from datetime import timedelta

import cv2

from canvas_archive.output.timelapse_writer import (
    TimelapseConfig,
    TimelapseWriter,
    pad_frame,
    save_png,
)
from canvas_archive.replay.scheduler import Snapshot
from canvas_archive.shared.errors import UnsupportedPlatformError
from canvas_archive.shared.protocol import WHITE
from canvas_archive.storage.keyframes import load_image

from factories import T0, RED


def frame(width, height, color=RED):
    pixels = np.empty((height, width, 3), dtype=np.uint8)
    pixels[:] = color
    return pixels


async def snapshot_stream(frames):
    for i, pixels in enumerate(frames):
        yield Snapshot(pixels=pixels, timestamp=T0 + timedelta(seconds=i), index=i)


@pytest.fixture
def writer(tmp_path):
    config = TimelapseConfig(output_dir=str(tmp_path / "out"), video_format="avi", video_codec="MJPG", fps=10)
    return TimelapseWriter(config)


class TestPadFrame:
    """Tests for frame padding."""

    def test_same_size_untouched(self):
        pixels = frame(8, 8)
        assert pad_frame(pixels, (8, 8)) is pixels

    def test_smaller_frame_is_padded(self):
        padded = pad_frame(frame(8, 4), (16, 8))
        assert padded.shape == (8, 16, 3)
        assert (padded[:4, :8] == RED).all()
        assert (padded[4:, :] == WHITE).all()
        assert (padded[:, 8:] == WHITE).all()


class TestTimelapseWriter:
    """Tests for video encoding."""

    @pytest.mark.asyncio
    async def test_write(self, writer):
        frames = [frame(16, 16)] * 5
        result = await writer.write(snapshot_stream(frames), "clip")

        assert result.frame_count == 5
        assert (result.width, result.height) == (16, 16)
        assert result.first_timestamp == T0
        assert result.last_timestamp == T0 + timedelta(seconds=4)
        assert result.duration_seconds == pytest.approx(0.5)
        assert result.path.endswith("clip.avi")

        capture = cv2.VideoCapture(result.path)
        try:
            assert capture.isOpened()
        finally:
            capture.release()

    @pytest.mark.asyncio
    async def test_growing_canvas_uses_fixed_size(self, writer):
        frames = [frame(16, 8), frame(16, 16)]
        result = await writer.write(snapshot_stream(frames), "growing", size=(16, 16))
        assert result.frame_count == 2
        assert (result.width, result.height) == (16, 16)

    @pytest.mark.asyncio
    async def test_no_frames(self, writer):
        result = await writer.write(snapshot_stream([]), "empty")
        assert result.frame_count == 0
        assert result.duration_seconds == 0.0
        assert result.to_dict()["first_timestamp"] is None

    @pytest.mark.asyncio
    async def test_unavailable_codec(self, writer, monkeypatch):
        class ClosedWriter:
            def __init__(self, *args):
                pass

            def isOpened(self):
                return False

        monkeypatch.setattr(cv2, "VideoWriter", ClosedWriter)
        with pytest.raises(UnsupportedPlatformError):
            await writer.write(snapshot_stream([frame(8, 8)]), "broken")


class TestSavePng:
    """Tests for single-frame output."""

    def test_round_trip(self, tmp_path):
        pixels = frame(6, 4)
        pixels[1, 2] = WHITE
        path = str(tmp_path / "still")

        assert save_png(pixels, path)
        assert np.array_equal(load_image(path + ".png"), pixels)
