from __future__ import annotations

from types import SimpleNamespace

import numpy as np
import pytest

from dfxdriver.engine import dfx_sdk
from dfxdriver.engine.base import open_collector
from dfxdriver.engine.dfx_sdk import DfxCollector, DfxEngine
from dfxdriver.errors import CollectorCreationFailed, StudyInitializationFailed
from dfxdriver.types import BoundingBox, CollectorState, FaceAnnotation, FrameRecord, PosePoint


class _SdkFace:
    def __init__(self, identity):
        self.identity = identity
        self.rect = None
        self.points = {}
        self.pose_valid = None
        self.detected = None

    def setPoseValid(self, value):
        self.pose_valid = value

    def setDetected(self, value):
        self.detected = value

    def setRect(self, x, y, w, h):
        self.rect = (x, y, w, h)

    def addPosePoint(self, name, point):
        self.points[name] = point


class _SdkPoint:
    def __init__(self, x, y, z, valid, estimated, quality):
        self.x, self.y, self.z = x, y, z
        self.valid, self.estimated, self.quality = valid, estimated, quality


class _SdkFrame:
    def __init__(self, video_frame):
        self.video_frame = video_frame
        self.faces = []
        self.markers = []

    def addFace(self, face):
        self.faces.append(face)

    def addMarker(self, text):
        self.markers.append(text)

    def getFaceIdentifiers(self):
        return [face.identity for face in self.faces]

    def getRegionNames(self, face_id):
        return ["forehead", "hidden"]

    def getRegionIntProperty(self, face_id, region_id, name):
        assert name == "draw"
        return 0 if region_id == "hidden" else 1

    def getRegionPolygon(self, face_id, region_id):
        return [SimpleNamespace(x=1, y=2), SimpleNamespace(x=8, y=2), SimpleNamespace(x=8, y=9)]


class _SdkChunk:
    def __init__(self, payload):
        self._payload = payload

    def getChunkPayload(self):
        return self._payload


class _SdkCollector:
    def __init__(self, states, current="WAITING"):
        self.states = list(states)
        self.current = current
        self.frames = []
        self.settings = {}
        self.chunk = _SdkChunk(bytearray(b"payload"))

    def getCurrentState(self):
        return self.current

    def setTargetFPS(self, fps):
        self.settings["fps"] = fps

    def setChunkDurationSeconds(self, seconds):
        self.settings["duration"] = seconds

    def setNumberChunks(self, count):
        self.settings["chunks"] = count

    def startCollection(self):
        self.settings["started"] = True

    def createFrame(self, video_frame):
        frame = _SdkFrame(video_frame)
        self.frames.append(frame)
        return frame

    def defineRegions(self, frame):
        frame.regions_defined = True

    def extractChannels(self, frame):
        return self.states.pop(0)

    def getChunkData(self):
        return self.chunk

    def getLastErrorMessage(self):
        return "collector error"

    def getEnabledConstraints(self):
        return ["FaceNone", "ImageBright"]


def _fake_sdk(collector, study_ok=True):
    factory = SimpleNamespace(
        getVersion=lambda: "4.9.1",
        getMode=lambda: "discrete",
        initializeStudyFromFile=lambda path: study_ok,
        createCollector=lambda: collector,
        getLastErrorMessage=lambda: "study file unreadable",
    )
    return SimpleNamespace(
        Factory=lambda: factory,
        CollectorState=SimpleNamespace(ERROR="ERROR", CHUNKREADY="CHUNKREADY", COMPLETED="COMPLETED"),
        ChannelOrder=SimpleNamespace(CHANNEL_ORDER_BGR="BGR"),
        VideoFrame=lambda image, number, timestamp, order: (image.shape, number, timestamp, order),
        Face=_SdkFace,
        PosePoint=_SdkPoint,
    )


def _face() -> FaceAnnotation:
    return FaceAnnotation(
        identity="subject",
        detected=True,
        pose_valid=False,
        rect=BoundingBox(3, 4, 50, 60),
        landmarks={"PT_NOSE": PosePoint(10.0, 11.0, valid=True, estimated=False, quality=0.75)},
    )


def _record(index=0) -> FrameRecord:
    return FrameRecord(index=index, timestamp_ns=index * 40_000_000, image=np.zeros((6, 8, 3), dtype=np.uint8))


def test_collector_submit_builds_sdk_frame_and_maps_states():
    sdk_collector = _SdkCollector(["WAITING", "CHUNKREADY", "COMPLETED", "ERROR"])
    collector = DfxCollector(_fake_sdk(sdk_collector), sdk_collector)

    states = [collector.submit_frame(_record(i), [_face()], ["mark"] if i == 1 else []) for i in range(4)]

    assert states == [
        CollectorState.RUNNING,
        CollectorState.CHUNKREADY,
        CollectorState.COMPLETED,
        CollectorState.ERROR,
    ]
    first = sdk_collector.frames[0]
    assert first.video_frame == ((6, 8, 3), 0, 0, "BGR")
    assert first.regions_defined
    face = first.faces[0]
    assert face.rect == (3, 4, 50, 60)
    assert face.pose_valid is False and face.detected is True
    nose = face.points["PT_NOSE"]
    assert (nose.x, nose.y, nose.z, nose.quality) == (10.0, 11.0, 0, 0.75)
    assert sdk_collector.frames[1].markers == ["mark"]
    assert sdk_collector.frames[2].video_frame[2] == 80_000_000


def test_collector_configure_chunk_and_regions():
    sdk_collector = _SdkCollector(["WAITING"])
    collector = DfxCollector(_fake_sdk(sdk_collector), sdk_collector)

    assert collector.region_polygons() == {}
    collector.configure(29.97, 5, 12)
    collector.start_collection()
    collector.submit_frame(_record(), [_face()])

    assert sdk_collector.settings == {"fps": 29.97, "duration": 5, "chunks": 12, "started": True}
    assert collector.get_chunk() == b"payload"
    regions = collector.region_polygons()
    assert list(regions) == ["subject"]
    assert list(regions["subject"]) == ["forehead"]
    assert regions["subject"]["forehead"].tolist() == [[1, 2], [8, 2], [8, 9]]
    assert collector.enabled_constraints() == ["FaceNone", "ImageBright"]
    assert collector.state is CollectorState.RUNNING


def test_collector_get_chunk_returns_none_without_data():
    sdk_collector = _SdkCollector([])
    sdk_collector.chunk = None
    collector = DfxCollector(_fake_sdk(sdk_collector), sdk_collector)

    assert collector.get_chunk() is None


def test_open_collector_surfaces_engine_messages(monkeypatch):
    monkeypatch.setattr(dfx_sdk, "_import_sdk", lambda: _fake_sdk(_SdkCollector([]), study_ok=False))
    engine = DfxEngine()

    with pytest.raises(StudyInitializationFailed, match="study file unreadable"):
        open_collector(engine, "study.dat")


def test_open_collector_rejects_collector_in_error_state(monkeypatch):
    sdk_collector = _SdkCollector([], current="ERROR")
    monkeypatch.setattr(dfx_sdk, "_import_sdk", lambda: _fake_sdk(sdk_collector))
    engine = DfxEngine()

    with pytest.raises(CollectorCreationFailed, match="collector error"):
        open_collector(engine, "study.dat")


def test_open_collector_returns_ready_collector(monkeypatch):
    sdk_collector = _SdkCollector([])
    monkeypatch.setattr(dfx_sdk, "_import_sdk", lambda: _fake_sdk(sdk_collector))
    engine = DfxEngine()

    collector = open_collector(engine, "study.dat")

    assert isinstance(collector, DfxCollector)
    assert engine.version == "4.9.1"
    assert engine.mode == "discrete"


def test_sdk_version_reports_missing_binding(monkeypatch):
    def _missing():
        raise RuntimeError("libdfx is required")

    monkeypatch.setattr(dfx_sdk, "_import_sdk", _missing)

    assert dfx_sdk.sdk_version() == dfx_sdk.SDK_MISSING
