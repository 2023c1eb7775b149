"""Per-frame face tracking annotations loaded from JSON."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Mapping, Optional

from dfxdriver.errors import AnnotationFormatError, AnnotationMissing, InvalidConfiguration
from dfxdriver.io_utils import load_json
from dfxdriver.types import BoundingBox, FaceAnnotation, PosePoint

LOGGER = logging.getLogger("dfxdriver.annotations")

RECT_FIELDS = ("x", "y", "w", "h")


def _rect_value(record: Mapping[str, Any], name: str) -> Any:
    flat_key = f"rect.{name}"
    if flat_key in record:
        return record[flat_key]
    nested = record.get("rect")
    if isinstance(nested, Mapping) and name in nested:
        return nested[name]
    raise KeyError(flat_key)


def _parse_rect(record: Mapping[str, Any]) -> BoundingBox:
    values = {}
    for name in RECT_FIELDS:
        value = int(_rect_value(record, name))
        if value < 0:
            raise ValueError(f"rect.{name} must not be negative, got {value}")
        values[name] = value
    return BoundingBox(**values)


def _parse_point(raw: Mapping[str, Any]) -> PosePoint:
    return PosePoint(
        x=float(raw["x"]),
        y=float(raw["y"]),
        valid=bool(raw["valid"]),
        estimated=bool(raw["estimated"]),
        quality=float(raw["quality"]),
    )


def parse_face(record: Mapping[str, Any], key: Optional[str] = None) -> FaceAnnotation:
    """Convert one raw `frames` entry into a FaceAnnotation."""
    try:
        points = record.get("points") or {}
        landmarks = {str(name): _parse_point(raw) for name, raw in points.items()}
        return FaceAnnotation(
            identity=str(record["id"]),
            detected=bool(record["detected"]),
            pose_valid=bool(record["poseValid"]),
            rect=_parse_rect(record),
            landmarks=landmarks,
        )
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        where = f" for frame key {key!r}" if key is not None else ""
        raise AnnotationFormatError(f"Malformed face annotation{where}: {exc}") from exc


class FaceAnnotationSource:
    """Lookup of face annotations by 0-based frame index.

    Annotation files key frames by stringified frame number. ``index_base``
    is added to the frame index to build the key; existing files count from 1.
    """

    def __init__(self, frames: Mapping[str, Any], index_base: int = 1) -> None:
        if index_base not in (0, 1):
            raise InvalidConfiguration(f"index_base must be 0 or 1, got {index_base}")
        self._frames = frames
        self.index_base = index_base

    @classmethod
    def from_file(cls, path: Path, index_base: int = 1) -> "FaceAnnotationSource":
        try:
            document = load_json(Path(path))
        except json.JSONDecodeError as exc:
            raise AnnotationFormatError(f"{path} is not valid JSON: {exc}") from exc
        if not isinstance(document, Mapping) or not isinstance(document.get("frames"), Mapping):
            raise AnnotationFormatError(f"{path} has no top-level 'frames' object")
        frames = document["frames"]
        LOGGER.info("Loaded %d face annotations from %s (index_base=%d)", len(frames), path, index_base)
        return cls(frames, index_base=index_base)

    def key_for(self, frame_index: int) -> str:
        return str(frame_index + self.index_base)

    def lookup(self, frame_index: int) -> FaceAnnotation:
        key = self.key_for(frame_index)
        try:
            record = self._frames[key]
        except KeyError:
            raise AnnotationMissing(frame_index, key) from None
        return parse_face(record, key)
