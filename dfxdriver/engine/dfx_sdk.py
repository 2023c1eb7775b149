"""Adapter over the vendor DFX SDK Python binding (``libdfx``)."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, List, Optional, Sequence

import numpy as np

from dfxdriver.engine.base import Collector, ExtractionEngine
from dfxdriver.types import CollectorState, FaceAnnotation, FrameRecord, RegionMap

LOGGER = logging.getLogger("dfxdriver.engine.dfx")

SDK_MISSING = "DFX SDK not installed"


def _import_sdk() -> Any:
    try:
        import libdfx as dfx
    except ImportError as exc:  # pragma: no cover - import guard
        raise RuntimeError(
            "libdfx is required for DfxEngine. "
            "Install the DFX SDK Python wheel shipped with your SDK license."
        ) from exc
    return dfx


def sdk_version() -> str:
    """Engine version string for ``--version``; never raises."""
    try:
        dfx = _import_sdk()
    except RuntimeError:
        return SDK_MISSING
    return str(dfx.Factory().getVersion())


class DfxCollector(Collector):
    """Collector session created by :class:`DfxEngine`."""

    def __init__(self, dfx: Any, collector: Any) -> None:
        self._dfx = dfx
        self._collector = collector
        self._frame: Any = None
        self._states = {
            dfx.CollectorState.ERROR: CollectorState.ERROR,
            dfx.CollectorState.CHUNKREADY: CollectorState.CHUNKREADY,
            dfx.CollectorState.COMPLETED: CollectorState.COMPLETED,
        }

    def _map_state(self, raw: Any) -> CollectorState:
        return self._states.get(raw, CollectorState.RUNNING)

    @property
    def state(self) -> CollectorState:
        return self._map_state(self._collector.getCurrentState())

    def configure(self, target_fps: float, chunk_duration_s: int, number_chunks: int) -> None:
        self._collector.setTargetFPS(float(target_fps))
        self._collector.setChunkDurationSeconds(int(chunk_duration_s))
        self._collector.setNumberChunks(int(number_chunks))

    def start_collection(self) -> None:
        self._collector.startCollection()

    def _build_face(self, annotation: FaceAnnotation) -> Any:
        dfx = self._dfx
        face = dfx.Face(annotation.identity)
        face.setPoseValid(annotation.pose_valid)
        face.setDetected(annotation.detected)
        rect = annotation.rect
        face.setRect(rect.x, rect.y, rect.w, rect.h)
        for name, point in annotation.landmarks.items():
            face.addPosePoint(
                name,
                dfx.PosePoint(point.x, point.y, 0, point.valid, point.estimated, point.quality),
            )
        return face

    def submit_frame(
        self,
        record: FrameRecord,
        faces: Sequence[FaceAnnotation],
        markers: Sequence[str] = (),
    ) -> CollectorState:
        dfx = self._dfx
        video_frame = dfx.VideoFrame(
            record.image,
            record.index,
            record.timestamp_ns,
            dfx.ChannelOrder.CHANNEL_ORDER_BGR,
        )
        frame = self._collector.createFrame(video_frame)
        for annotation in faces:
            frame.addFace(self._build_face(annotation))
        for marker in markers:
            frame.addMarker(marker)
        self._collector.defineRegions(frame)
        result = self._collector.extractChannels(frame)
        # Region queries below read from this frame until the next submit.
        self._frame = frame
        return self._map_state(result)

    def get_chunk(self) -> Optional[bytes]:
        chunk_data = self._collector.getChunkData()
        if chunk_data is None:
            return None
        payload = chunk_data.getChunkPayload()
        return None if payload is None else bytes(payload)

    def last_error_message(self) -> str:
        return str(self._collector.getLastErrorMessage())

    def region_polygons(self) -> RegionMap:
        frame = self._frame
        if frame is None:
            return {}
        regions: RegionMap = {}
        for face_id in frame.getFaceIdentifiers():
            for region_id in frame.getRegionNames(face_id):
                if frame.getRegionIntProperty(face_id, region_id, "draw") == 0:
                    continue
                polygon = frame.getRegionPolygon(face_id, region_id)
                points = np.array([(point.x, point.y) for point in polygon], dtype=np.int32)
                regions.setdefault(face_id, {})[region_id] = points
        return regions

    def enabled_constraints(self) -> List[str]:
        return [str(constraint) for constraint in self._collector.getEnabledConstraints()]


class DfxEngine(ExtractionEngine):
    """Wraps ``libdfx.Factory``; the binding is imported on construction."""

    def __init__(self) -> None:
        self._dfx = _import_sdk()
        self._factory = self._dfx.Factory()
        LOGGER.info("Created DFX Factory: %s", self.version)

    @property
    def version(self) -> str:
        return str(self._factory.getVersion())

    @property
    def mode(self) -> str:
        return str(self._factory.getMode())

    def initialize_study(self, study_path: Path) -> bool:
        return bool(self._factory.initializeStudyFromFile(str(study_path)))

    def create_collector(self) -> DfxCollector:
        return DfxCollector(self._dfx, self._factory.createCollector())

    def last_error_message(self) -> str:
        return str(self._factory.getLastErrorMessage())
