"""Debug window showing collector regions on each processed frame."""

from __future__ import annotations

import logging
from typing import Optional, Tuple

import cv2
import numpy as np

from dfxdriver.types import ExtractionStep, RegionMap

LOGGER = logging.getLogger("dfxdriver.viz.overlay")

REGION_COLOR: Tuple[int, int, int] = (255, 255, 0)  # cyan in BGR
TEXT_COLOR: Tuple[int, int, int] = (0, 0, 0)


def draw_regions(frame: np.ndarray, regions: RegionMap, color: Tuple[int, int, int] = REGION_COLOR) -> np.ndarray:
    """Draw every region polygon as a closed anti-aliased outline, in place."""
    for face_regions in regions.values():
        for polygon in face_regions.values():
            points = np.asarray(polygon, dtype=np.int32).reshape(-1, 1, 2)
            if len(points) < 2:
                continue
            cv2.polylines(frame, [points], True, color, 1, cv2.LINE_AA)
    return frame


def caption(video_name: str, frame_number: int, total_frames: int) -> str:
    return f"Extracting from {video_name} - frame {frame_number} of {total_frames}"


def draw_caption(frame: np.ndarray, text: str) -> np.ndarray:
    cv2.putText(frame, text, (10, 30), cv2.FONT_HERSHEY_PLAIN, 1, TEXT_COLOR, 1, cv2.LINE_AA)
    return frame


def render_step(step: ExtractionStep, video_name: str) -> np.ndarray:
    """Annotated copy of the step's frame; the driver's frame is left untouched."""
    frame = step.record.image.copy()
    draw_regions(frame, step.regions)
    draw_caption(frame, caption(video_name, step.record.number, step.total_frames))
    return frame


class RegionOverlay:
    """Observer that shows each frame in a window and reports the quit key."""

    def __init__(self, video_name: str, window_name: str = "capture", quit_key: str = "q", wait_ms: int = 1) -> None:
        self.video_name = video_name
        self.window_name = window_name
        self.quit_key = ord(quit_key)
        self.wait_ms = wait_ms
        self._window_open = False

    def __call__(self, step: ExtractionStep) -> bool:
        frame = render_step(step, self.video_name)
        cv2.imshow(self.window_name, frame)
        self._window_open = True
        key = cv2.waitKey(self.wait_ms)
        if key != -1 and (key & 0xFF) == self.quit_key:
            LOGGER.info("Quit key pressed at frame %d", step.record.number)
            return True
        return False

    def close(self) -> None:
        if self._window_open:
            cv2.destroyWindow(self.window_name)
            self._window_open = False


def build_overlay(enabled: bool, video_name: str) -> Optional[RegionOverlay]:
    if not enabled:
        return None
    LOGGER.info("Region overlay enabled (press q in the window to stop)")
    return RegionOverlay(video_name)
