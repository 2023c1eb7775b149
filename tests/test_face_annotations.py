import json
from pathlib import Path

import pytest

from dfxdriver.annotations.faces import FaceAnnotationSource, parse_face
from dfxdriver.errors import AnnotationFormatError, AnnotationMissing, InvalidConfiguration
from dfxdriver.types import BoundingBox


def _record(**overrides) -> dict:
    record = {
        "id": "subject-1",
        "poseValid": True,
        "detected": False,
        "rect.x": 100,
        "rect.y": 50,
        "rect.w": 80,
        "rect.h": 90,
        "points": {
            "PT_CHIN": {"x": 140.5, "y": 138.0, "valid": True, "estimated": False, "quality": 0.95},
            "PT_NOSE": {"x": 141.0, "y": 100.25, "valid": False, "estimated": True, "quality": 0.1},
        },
    }
    record.update(overrides)
    return record


def _write_faces(path: Path, frames: dict) -> Path:
    path.write_text(json.dumps({"frames": frames}), encoding="utf-8")
    return path


def test_parse_face_reads_flat_rect_keys_and_points():
    face = parse_face(_record())

    assert face.identity == "subject-1"
    assert face.pose_valid is True
    assert face.detected is False
    assert face.rect == BoundingBox(100, 50, 80, 90)
    assert set(face.landmarks) == {"PT_CHIN", "PT_NOSE"}
    nose = face.landmarks["PT_NOSE"]
    assert (nose.x, nose.y, nose.valid, nose.estimated) == (141.0, 100.25, False, True)
    assert nose.quality == pytest.approx(0.1)


def test_parse_face_accepts_nested_rect():
    record = _record()
    for key in ("rect.x", "rect.y", "rect.w", "rect.h"):
        del record[key]
    record["rect"] = {"x": 1, "y": 2, "w": 3, "h": 4}

    face = parse_face(record)

    assert face.rect == BoundingBox(1, 2, 3, 4)


def test_parse_face_without_points_has_no_landmarks():
    face = parse_face(_record(points={}))

    assert face.landmarks == {}


@pytest.mark.parametrize(
    "overrides",
    [
        {"rect.w": -1},
        {"id": None, "detected": "yes", "rect.x": "left"},
        {"points": {"PT_NOSE": {"x": 1.0}}},
    ],
)
def test_parse_face_rejects_malformed_records(overrides):
    with pytest.raises(AnnotationFormatError):
        parse_face(_record(**overrides), key="3")


def test_parse_face_rejects_missing_identity():
    record = _record()
    del record["id"]

    with pytest.raises(AnnotationFormatError, match="'5'"):
        parse_face(record, key="5")


def test_lookup_uses_one_based_keys_by_default(tmp_path):
    path = _write_faces(tmp_path / "faces.json", {"1": _record(id="first"), "2": _record(id="second")})
    source = FaceAnnotationSource.from_file(path)

    assert source.lookup(0).identity == "first"
    assert source.lookup(1).identity == "second"
    assert source.key_for(1) == "2"
    with pytest.raises(AnnotationMissing):
        source.lookup(2)


def test_lookup_with_zero_based_keys(tmp_path):
    path = _write_faces(tmp_path / "faces.json", {"0": _record(id="first")})
    source = FaceAnnotationSource.from_file(path, index_base=0)

    assert source.lookup(0).identity == "first"


def test_lookup_missing_frame_raises_annotation_missing():
    source = FaceAnnotationSource({"1": _record()})

    with pytest.raises(AnnotationMissing) as excinfo:
        source.lookup(4)

    assert excinfo.value.frame_index == 4
    assert excinfo.value.key == "5"


def test_from_file_requires_frames_object(tmp_path):
    path = tmp_path / "faces.json"
    path.write_text(json.dumps({"faces": {}}), encoding="utf-8")

    with pytest.raises(AnnotationFormatError):
        FaceAnnotationSource.from_file(path)


def test_from_file_rejects_invalid_json(tmp_path):
    path = tmp_path / "faces.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(AnnotationFormatError):
        FaceAnnotationSource.from_file(path)


def test_index_base_must_be_zero_or_one():
    with pytest.raises(InvalidConfiguration):
        FaceAnnotationSource({}, index_base=2)
