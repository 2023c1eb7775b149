"""Common dataclasses and enums used across the dfxdriver package."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Protocol

import numpy as np

# Polygon vertices in pixel coordinates, shape (N, 2)
Polygon = np.ndarray
# face id -> region name -> polygon
RegionMap = Dict[str, Dict[str, Polygon]]

CHANNEL_ORDER_BGR = "BGR"


class FrameSource(Protocol):
    def read(self) -> Optional[np.ndarray]:
        """Return the next frame, or None at end of stream."""


class CollectorState(Enum):
    """Per-frame result reported by the engine collector."""

    ERROR = "error"
    CHUNKREADY = "chunkready"
    COMPLETED = "completed"
    RUNNING = "running"


class DriverPhase(Enum):
    INIT = "init"
    RUNNING = "running"
    DRAINING = "draining"
    DONE = "done"


class RunOutcome(Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    INTERRUPTED = "interrupted"


@dataclass(frozen=True)
class VideoStreamMetadata:
    """Stream properties read once from the frame source."""

    frame_rate_hz: float
    total_frame_count: int
    width: int = 0
    height: int = 0
    name: str = ""


@dataclass(frozen=True)
class ChunkPlan:
    chunk_duration_s: int
    frames_per_chunk: int
    expected_chunk_count: int


@dataclass
class FrameRecord:
    """A decoded frame plus its pacing timestamp."""

    index: int
    timestamp_ns: int
    image: np.ndarray
    channel_order: str = CHANNEL_ORDER_BGR

    @property
    def rows(self) -> int:
        return int(self.image.shape[0])

    @property
    def cols(self) -> int:
        return int(self.image.shape[1])

    @property
    def number(self) -> int:
        """1-based frame number, as shown to operators."""
        return self.index + 1


@dataclass(frozen=True)
class BoundingBox:
    x: int
    y: int
    w: int
    h: int


@dataclass(frozen=True)
class PosePoint:
    x: float
    y: float
    valid: bool = True
    estimated: bool = False
    quality: float = 1.0


@dataclass
class FaceAnnotation:
    """Externally tracked face metadata for one frame."""

    identity: str
    detected: bool
    pose_valid: bool
    rect: BoundingBox
    landmarks: Dict[str, PosePoint] = field(default_factory=dict)


@dataclass(frozen=True)
class ChunkEvent:
    """A chunk payload retrieved from the collector, ready for a sink."""

    number: int
    payload: bytes
    frame_index: int
    timestamp_ns: int
    trigger: str

    @property
    def size(self) -> int:
        return len(self.payload)


@dataclass(frozen=True)
class ExtractionStep:
    """Read-only view of one processed frame handed to observers."""

    record: FrameRecord
    collector_state: CollectorState
    regions: RegionMap
    total_frames: int


@dataclass
class DriverState:
    """Mutable bookkeeping for a single collection run."""

    phase: DriverPhase = DriverPhase.INIT
    outcome: Optional[RunOutcome] = None
    frames_read: int = 0
    frames_submitted: int = 0
    chunk_fetches: int = 0
    chunks_dispatched: int = 0
    empty_chunks: int = 0
    last_collector_state: Optional[CollectorState] = None
    stop_requested: bool = False
    error_message: Optional[str] = None

    @property
    def next_index(self) -> int:
        return self.frames_read

    def finish(self, outcome: RunOutcome, error_message: Optional[str] = None) -> None:
        self.phase = DriverPhase.DONE
        self.outcome = outcome
        self.error_message = error_message
