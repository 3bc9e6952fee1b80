"""
Keyframe storage.

A keyframe is a full canvas image saved as PNG, plus a row in the
`keyframes` table pointing at it. Replays start from the latest
keyframe before the requested time so only a short tail of the log
has to be applied.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional

import aiosqlite
import cv2
import numpy as np

from ..canvas.geometry import CANVAS_START, max_canvas_size
from ..shared.errors import UnsupportedPlatformError, UpstreamReadError
from ..shared.metrics import ReplayMetricsCollector
from ..shared.protocol import Color, Keyframe, WHITE
from .database import InputDatabase, from_microseconds, to_microseconds, MICROSECOND

logger = logging.getLogger(__name__)


def load_image(path: str) -> np.ndarray:
    """Read an image file as an RGB array."""
    frame = cv2.imread(path, cv2.IMREAD_COLOR)
    if frame is None:
        raise UpstreamReadError(f"Cannot read keyframe image {path}")
    return cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)


def save_image(path: str, pixels: np.ndarray) -> bool:
    """Write an RGB array to an image file; the format follows the extension."""
    try:
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        ok = cv2.imwrite(path, cv2.cvtColor(pixels, cv2.COLOR_RGB2BGR))
    except OSError as e:
        logger.error(f"Failed to write image {path}: {e}")
        return False
    except cv2.error as e:
        raise UnsupportedPlatformError(f"Image encoder unavailable for {path}: {e}") from e
    if not ok:
        logger.error(f"Failed to write image {path}")
    return bool(ok)


@dataclass
class KeyframeConfig:
    """Keyframe settings, the `keyframes` section of the config file."""
    keyframes_dir: str = "keyframes"
    image_format: str = "png"

    @classmethod
    def from_dict(cls, data: dict) -> "KeyframeConfig":
        return cls(
            keyframes_dir=data.get("keyframes_dir", cls.keyframes_dir),
            image_format=data.get("image_format", cls.image_format),
        )


class KeyframeStore:
    """
    Looks up and persists keyframes.

    Features:
    - Latest-before lookup with a blank-canvas fallback
    - Image decoding off the event loop
    - Batched persistence in a single transaction
    """

    def __init__(
        self,
        database: InputDatabase,
        config: Optional[KeyframeConfig] = None,
        background: Color = WHITE,
        metrics: Optional[ReplayMetricsCollector] = None,
    ):
        self.database = database
        self.config = config or KeyframeConfig()
        self.background = background
        self.metrics = metrics
        self._dir = Path(self.config.keyframes_dir)

    def image_path_for(self, timestamp: datetime) -> str:
        return str(self._dir / f"{timestamp:%Y%m%d_%H%M%S_%f}.{self.config.image_format}")

    def blank_keyframe(self, target: datetime) -> Keyframe:
        """
        An all-background canvas stamped strictly before `target`.

        Stamped at the canvas start, or just before `target` when the
        target is not after the canvas start.
        """
        width, height = max_canvas_size()
        pixels = np.empty((height, width, 3), dtype=np.uint8)
        pixels[:] = self.background
        timestamp = CANVAS_START if target > CANVAS_START else target - MICROSECOND
        return Keyframe(pixels=pixels, timestamp=timestamp)

    async def nearest_before(self, target: datetime) -> Keyframe:
        """
        Get the latest keyframe with a timestamp strictly before `target`.

        Falls back to a blank canvas when none is stored.
        """
        async with self.database.session() as db:
            try:
                cursor = await db.execute(
                    "SELECT timestamp, image_path FROM keyframes "
                    "WHERE timestamp < ? ORDER BY timestamp DESC LIMIT 1",
                    (to_microseconds(target),),
                )
                row = await cursor.fetchone()
            except aiosqlite.Error as e:
                raise UpstreamReadError(f"Keyframe lookup failed: {e}") from e

        if self.metrics:
            self.metrics.record_keyframe_lookup(hit=row is not None)

        if row is None:
            logger.debug(f"No keyframe before {target.isoformat()}, starting from blank canvas")
            return self.blank_keyframe(target)

        timestamp, image_path = from_microseconds(row[0]), row[1]
        pixels = await asyncio.to_thread(load_image, image_path)
        logger.debug(f"Using keyframe {image_path} for {target.isoformat()}")
        return Keyframe(pixels=pixels, timestamp=timestamp, image_path=image_path)

    async def _save(self, keyframe: Keyframe) -> Optional[str]:
        path = self.image_path_for(keyframe.timestamp)
        if await asyncio.to_thread(save_image, path, keyframe.pixels):
            return path
        return None

    async def put(self, keyframe: Keyframe) -> bool:
        """
        Persist one keyframe.

        Returns:
            True if successful, False otherwise
        """
        return await self.put_many([keyframe]) == 1

    async def put_many(self, keyframes: Iterable[Keyframe]) -> int:
        """
        Persist keyframes, recording all rows in one transaction.

        Returns:
            Number of keyframes stored
        """
        rows = []
        for keyframe in keyframes:
            path = await self._save(keyframe)
            if path is None:
                continue
            rows.append((to_microseconds(keyframe.timestamp), path))

        if not rows:
            return 0

        async with self.database.session() as db:
            try:
                await db.executemany(
                    "INSERT OR REPLACE INTO keyframes (timestamp, image_path) VALUES (?, ?)",
                    rows,
                )
                await db.commit()
            except aiosqlite.Error as e:
                logger.error(f"Failed to store keyframes: {e}")
                await db.rollback()
                return 0

        logger.info(f"Stored {len(rows)} keyframes in {self._dir}")
        return len(rows)
