"""Capability interface for the external extraction engine."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional, Sequence

from dfxdriver.errors import CollectorCreationFailed, StudyInitializationFailed
from dfxdriver.types import CollectorState, FaceAnnotation, FrameRecord, RegionMap

LOGGER = logging.getLogger("dfxdriver.engine")


class Collector(ABC):
    """Stateful extraction session. Not safe for concurrent use."""

    @property
    @abstractmethod
    def state(self) -> CollectorState:
        """Current collector state."""

    @abstractmethod
    def configure(self, target_fps: float, chunk_duration_s: int, number_chunks: int) -> None:
        """Set pacing and chunking before collection starts."""

    @abstractmethod
    def start_collection(self) -> None:
        ...

    @abstractmethod
    def submit_frame(
        self,
        record: FrameRecord,
        faces: Sequence[FaceAnnotation],
        markers: Sequence[str] = (),
    ) -> CollectorState:
        """Define regions on the frame and extract channels from it."""

    @abstractmethod
    def get_chunk(self) -> Optional[bytes]:
        """Return the pending chunk payload, or None when there is none."""

    @abstractmethod
    def last_error_message(self) -> str:
        ...

    def region_polygons(self) -> RegionMap:
        """Drawable region polygons for the most recently submitted frame."""
        return {}

    def enabled_constraints(self) -> List[str]:
        return []


class ExtractionEngine(ABC):
    """Factory side of the engine: version info, study loading, collectors."""

    @property
    @abstractmethod
    def version(self) -> str:
        ...

    @property
    def mode(self) -> str:
        return "unknown"

    @abstractmethod
    def initialize_study(self, study_path: Path) -> bool:
        ...

    @abstractmethod
    def create_collector(self) -> Collector:
        ...

    @abstractmethod
    def last_error_message(self) -> str:
        ...


def open_collector(engine: ExtractionEngine, study_path: Path) -> Collector:
    """Load the study and create a collector, raising with the engine's own message."""
    if not engine.initialize_study(Path(study_path)):
        raise StudyInitializationFailed(engine.last_error_message())
    LOGGER.info("Created study from %s", study_path)

    collector = engine.create_collector()
    if collector.state is CollectorState.ERROR:
        raise CollectorCreationFailed(collector.last_error_message())
    LOGGER.info("Created collector")
    return collector
