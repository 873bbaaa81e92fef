"""Frame sources feeding the live loop."""

from __future__ import annotations

import logging
from typing import Iterable, Optional, Protocol

import cv2
import numpy as np

from .errors import FrameProcessingError, FrameSourceClosed

logger = logging.getLogger(__name__)


class FrameSource(Protocol):
    def read(self) -> Optional[np.ndarray]:
        """Return the next RGBA frame, or None if no frame is ready yet."""

    def close(self) -> None:
        ...


class IterableSource:
    """Replays frames from an iterable; ``None`` items mean "not ready yet"."""

    def __init__(self, frames: Iterable):
        self._frames = iter(frames)

    def read(self):
        try:
            return next(self._frames)
        except StopIteration:
            raise FrameSourceClosed("no more frames") from None

    def close(self) -> None:
        self._frames = iter(())


class VideoCaptureSource:
    """RGBA frames from a camera index or a video file via cv2.VideoCapture."""

    def __init__(self, source):
        if isinstance(source, str) and source.isdigit():
            source = int(source)
        self.source = source
        self._cap = cv2.VideoCapture(source)
        if not self._cap.isOpened():
            raise FrameSourceClosed(f"Could not open video source: {source}")
        logger.info("Opened video source %s", source)

    @property
    def fps(self) -> float:
        return float(self._cap.get(cv2.CAP_PROP_FPS) or 0.0)

    def read(self):
        if self._cap is None:
            raise FrameSourceClosed("video source is closed")
        ok, frame = self._cap.read()
        if not ok:
            if isinstance(self.source, int):
                raise FrameProcessingError(f"camera {self.source} returned no frame")
            raise FrameSourceClosed("end of video")
        return cv2.cvtColor(frame, cv2.COLOR_BGR2RGBA)

    def close(self) -> None:
        if self._cap is not None:
            self._cap.release()
            self._cap = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False
