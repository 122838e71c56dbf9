"""
Frame source for the rPPG engine.

Wraps OpenCV ``VideoCapture`` so the same code reads either a live camera
(integer index) or a recorded video file, yielding BGR frames together with
their capture timestamps in seconds.
"""

from __future__ import annotations

import logging
import time
from typing import Generator, Optional, Tuple, Union

import cv2
import numpy as np

logger = logging.getLogger(__name__)

# Consecutive failed reads tolerated before frames() gives up
MAX_NULL_STREAK: int = 10


class VideoSource:
    """
    Parameters
    ----------
    source:
        Camera index (``int`` or digit string) or path to a video file.
    fps:
        Requested capture rate for cameras.  Ignored for files.
    resolution:
        Optional requested ``(width, height)`` for cameras.
    """

    def __init__(
        self,
        source: Union[int, str] = 0,
        fps: int = 30,
        resolution: Optional[Tuple[int, int]] = None,
    ) -> None:
        if isinstance(source, str) and source.isdigit():
            source = int(source)
        self.source = source
        self.fps = fps
        self.resolution = resolution

        self._cap: "cv2.VideoCapture | None" = None
        self._t0: float = 0.0

    @property
    def is_file(self) -> bool:
        return not isinstance(self.source, int)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(self) -> None:
        """Open the camera or video file."""
        cap = cv2.VideoCapture(self.source)
        if not cap.isOpened():
            raise RuntimeError(f"Cannot open video source {self.source!r}")
        if not self.is_file:
            if self.resolution is not None:
                w, h = self.resolution
                cap.set(cv2.CAP_PROP_FRAME_WIDTH, w)
                cap.set(cv2.CAP_PROP_FRAME_HEIGHT, h)
            cap.set(cv2.CAP_PROP_FPS, self.fps)
        self._cap = cap
        self._t0 = time.monotonic()
        logger.info(
            "Video source opened – source=%s kind=%s",
            self.source,
            "file" if self.is_file else "camera",
        )

    def close(self) -> None:
        """Release the capture device."""
        if self._cap is None:
            return
        self._cap.release()
        self._cap = None
        logger.info("Video source closed.")

    def __enter__(self) -> "VideoSource":
        self.open()
        return self

    def __exit__(self, *_) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Frame acquisition
    # ------------------------------------------------------------------

    def read_frame(self) -> Optional[Tuple[np.ndarray, float]]:
        """
        Capture a single frame.

        Returns
        -------
        tuple or None
            ``(frame, timestamp)`` with a BGR ``uint8`` frame and its capture
            time in seconds, or *None* on failure.
        """
        if self._cap is None:
            raise RuntimeError("Video source is not open.  Call open() first.")

        ok, frame = self._cap.read()
        if not ok or frame is None:
            return None
        if self.is_file:
            timestamp = self._cap.get(cv2.CAP_PROP_POS_MSEC) / 1000.0
        else:
            timestamp = time.monotonic() - self._t0
        return frame, timestamp

    def frames(self) -> Generator[Tuple[np.ndarray, float], None, None]:
        """
        Yield ``(frame, timestamp)`` until the source is exhausted, closed, or
        fails ``MAX_NULL_STREAK`` times in a row.
        """
        null_streak = 0
        while self._cap is not None:
            item = self.read_frame()
            if item is None:
                if self.is_file:
                    logger.info("End of video file reached.")
                    break
                null_streak += 1
                if null_streak >= MAX_NULL_STREAK:
                    logger.error(
                        "Video source returned %d consecutive empty frames – aborting.",
                        MAX_NULL_STREAK,
                    )
                    break
                logger.warning("VideoCapture.read() returned no frame.")
                continue
            null_streak = 0
            yield item
