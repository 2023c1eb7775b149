"""Exception hierarchy raised by the collection pipeline."""

from __future__ import annotations

from typing import Optional


class DriverError(Exception):
    """Base class for fatal collection errors."""


class InvalidConfiguration(DriverError):
    """Bad command-line arguments or an unusable stream configuration."""


class StudyInitializationFailed(DriverError):
    """The engine refused to load the study file."""


class CollectorCreationFailed(DriverError):
    """The engine could not create a collector session."""


class AnnotationFormatError(DriverError):
    """The face annotation document does not follow the expected schema."""


class AnnotationMissing(DriverError):
    """No face annotation exists for a frame that was read from the video."""

    def __init__(self, frame_index: int, key: str) -> None:
        super().__init__(f"No face annotation for frame {frame_index} (key {key!r})")
        self.frame_index = frame_index
        self.key = key


class EngineError(DriverError):
    """The collector reported its ERROR state."""

    def __init__(self, message: str, frame_index: Optional[int] = None) -> None:
        detail = message or "unknown engine error"
        if frame_index is not None:
            detail = f"{detail} (frame {frame_index})"
        super().__init__(detail)
        self.engine_message = message
        self.frame_index = frame_index
