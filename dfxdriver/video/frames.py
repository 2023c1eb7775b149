"""OpenCV-backed frame source."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import cv2
import numpy as np

from dfxdriver.types import VideoStreamMetadata

LOGGER = logging.getLogger("dfxdriver.video")


class VideoFrameSource:
    """Sequential reader over a video file.

    Decoder failures are logged and reported as end of stream; the driver
    drains the last chunk either way.
    """

    def __init__(self, video_path: Path) -> None:
        self.video_path = Path(video_path)
        self.cap = cv2.VideoCapture(str(self.video_path))
        if not self.cap.isOpened():
            raise RuntimeError(f"Unable to open video {self.video_path}")
        self.metadata = VideoStreamMetadata(
            frame_rate_hz=float(self.cap.get(cv2.CAP_PROP_FPS) or 0.0),
            total_frame_count=max(0, int(self.cap.get(cv2.CAP_PROP_FRAME_COUNT) or 0)),
            width=int(self.cap.get(cv2.CAP_PROP_FRAME_WIDTH)),
            height=int(self.cap.get(cv2.CAP_PROP_FRAME_HEIGHT)),
            name=self.video_path.name,
        )
        self.frames_read = 0
        LOGGER.info(
            "Opened video %s fps=%.2f frames=%d size=%dx%d",
            self.video_path,
            self.metadata.frame_rate_hz,
            self.metadata.total_frame_count,
            self.metadata.width,
            self.metadata.height,
        )

    def read(self) -> Optional[np.ndarray]:
        if self.cap is None:
            return None
        try:
            ret, frame = self.cap.read()
        except cv2.error as exc:
            LOGGER.warning("Frame read failed after %d frames: %s", self.frames_read, exc)
            return None
        if not ret or frame is None or frame.size == 0:
            return None
        self.frames_read += 1
        return frame

    def release(self) -> None:
        if self.cap is not None:
            self.cap.release()
            self.cap = None

    def __enter__(self) -> "VideoFrameSource":
        return self

    def __exit__(self, *exc_info) -> None:
        self.release()
