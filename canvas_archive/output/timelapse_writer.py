"""
Timelapse video writer.
Encodes an ordered snapshot stream into a video file with OpenCV.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import AsyncIterable, Optional, Tuple

import cv2
import numpy as np

from ..replay.scheduler import Snapshot
from ..shared.errors import UnsupportedPlatformError
from ..shared.protocol import Color, WHITE
from ..storage.keyframes import save_image

logger = logging.getLogger(__name__)


@dataclass
class TimelapseConfig:
    """Video output settings, the `timelapse` section of the config file."""
    output_dir: str = "timelapses"
    video_format: str = "mp4"           # mp4 or avi
    video_codec: str = "mp4v"           # mp4v, XVID, MJPG
    fps: int = 30

    @classmethod
    def from_dict(cls, data: dict) -> "TimelapseConfig":
        return cls(
            output_dir=data.get("output_dir", cls.output_dir),
            video_format=data.get("video_format", cls.video_format),
            video_codec=data.get("video_codec", cls.video_codec),
            fps=data.get("fps", cls.fps),
        )


@dataclass
class TimelapseResult:
    """What a finished timelapse contains."""
    path: str
    frame_count: int
    width: int
    height: int
    fps: int = 30
    first_timestamp: Optional[datetime] = None
    last_timestamp: Optional[datetime] = None

    @property
    def duration_seconds(self) -> float:
        return 0.0 if self.frame_count == 0 else self.frame_count / self.fps

    def to_dict(self) -> dict:
        return {
            "path": self.path,
            "frame_count": self.frame_count,
            "duration_seconds": self.duration_seconds,
            "resolution": {"width": self.width, "height": self.height},
            "first_timestamp": self.first_timestamp.isoformat() if self.first_timestamp else None,
            "last_timestamp": self.last_timestamp.isoformat() if self.last_timestamp else None,
        }


def pad_frame(pixels: np.ndarray, size: Tuple[int, int], background: Color = WHITE) -> np.ndarray:
    """Place a frame at the top-left of a background-filled canvas of `size` (width, height)."""
    width, height = size
    if pixels.shape[1] == width and pixels.shape[0] == height:
        return pixels
    padded = np.empty((height, width, 3), dtype=np.uint8)
    padded[:] = background
    h = min(height, pixels.shape[0])
    w = min(width, pixels.shape[1])
    padded[:h, :w] = pixels[:h, :w]
    return padded


def save_png(pixels: np.ndarray, path: str) -> bool:
    """Save a single RGB frame as PNG."""
    if not path.lower().endswith(".png"):
        path = f"{path}.png"
    return save_image(path, pixels)


class TimelapseWriter:
    """
    Writes snapshot streams to video files.

    Frames are padded to the output size so the canvas can grow
    mid-video; the size is fixed by the caller or by the first frame.
    """

    def __init__(self, config: Optional[TimelapseConfig] = None, background: Color = WHITE):
        self.config = config or TimelapseConfig()
        self.background = background
        self._output_dir = Path(self.config.output_dir)

    def output_path(self, name: str) -> Path:
        return self._output_dir / f"{name}.{self.config.video_format}"

    def _open(self, path: Path, size: Tuple[int, int]) -> "cv2.VideoWriter":
        path.parent.mkdir(parents=True, exist_ok=True)
        try:
            fourcc = cv2.VideoWriter_fourcc(*self.config.video_codec)
            writer = cv2.VideoWriter(str(path), fourcc, self.config.fps, size)
        except cv2.error as e:
            raise UnsupportedPlatformError(f"Video backend failed for {path}: {e}") from e

        if not writer.isOpened():
            raise UnsupportedPlatformError(
                f"Cannot open video writer for {path} with codec {self.config.video_codec}"
            )
        return writer

    async def write(
        self,
        snapshots: AsyncIterable[Snapshot],
        name: str,
        size: Optional[Tuple[int, int]] = None,
    ) -> TimelapseResult:
        """
        Encode snapshots in order.

        Args:
            snapshots: Ordered snapshot stream
            name: File name without extension
            size: Output (width, height); defaults to the first frame's size

        Returns:
            TimelapseResult describing the written file
        """
        path = self.output_path(name)
        writer = None
        result = TimelapseResult(path=str(path), frame_count=0, width=0, height=0, fps=self.config.fps)

        try:
            async for snapshot in snapshots:
                if writer is None:
                    if size is None:
                        size = (snapshot.pixels.shape[1], snapshot.pixels.shape[0])
                    writer = self._open(path, size)
                    result.width, result.height = size
                    result.first_timestamp = snapshot.timestamp
                    logger.info(f"Writing timelapse {path} at {size[0]}x{size[1]}, {self.config.fps} fps")

                frame = pad_frame(snapshot.pixels, size, self.background)
                bgr = cv2.cvtColor(frame, cv2.COLOR_RGB2BGR)
                await asyncio.to_thread(writer.write, bgr)

                result.frame_count += 1
                result.last_timestamp = snapshot.timestamp
                if result.frame_count % 100 == 0:
                    logger.debug(f"{result.frame_count} frames written, at {snapshot.timestamp.isoformat()}")
        finally:
            if writer is not None:
                writer.release()

        if result.frame_count == 0:
            logger.warning(f"No frames to write for {name}")
        else:
            logger.info(f"Saved timelapse: {path} ({result.frame_count} frames)")
        return result
