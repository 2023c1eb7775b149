"""Chunk planning from stream metadata."""

from __future__ import annotations

import logging
import math
from typing import Any

from dfxdriver.errors import InvalidConfiguration
from dfxdriver.types import ChunkPlan, VideoStreamMetadata

LOGGER = logging.getLogger("dfxdriver.planning")

DEFAULT_CHUNK_DURATION_S = 5
# One extra frame per chunk so the collector never runs a frame short.
FRAME_MARGIN = 1

NANOS_PER_SECOND = 1_000_000_000.0


def _check_frame_rate(frame_rate_hz: float) -> float:
    rate = float(frame_rate_hz)
    if not math.isfinite(rate) or rate <= 0.0:
        raise InvalidConfiguration(f"Frame rate must be positive, got {frame_rate_hz!r}")
    return rate


def check_chunk_duration(chunk_duration_s: Any) -> int:
    """Accept whole seconds, at least one."""
    message = f"Chunk duration must be a positive whole number of seconds, got {chunk_duration_s!r}"
    try:
        duration = int(chunk_duration_s)
    except (TypeError, ValueError, OverflowError) as exc:
        raise InvalidConfiguration(message) from exc
    if isinstance(chunk_duration_s, bool) or duration != chunk_duration_s or duration < 1:
        raise InvalidConfiguration(message)
    return duration


def plan_chunks(metadata: VideoStreamMetadata, chunk_duration_s: int = DEFAULT_CHUNK_DURATION_S) -> ChunkPlan:
    """Compute frames per chunk and the number of chunks to announce.

    Both values round up. Announcing more chunks than the stream can fill is
    harmless (the collector reports COMPLETED or the stream drains first);
    announcing fewer would let the collector stop early.
    """
    rate = _check_frame_rate(metadata.frame_rate_hz)
    duration = check_chunk_duration(chunk_duration_s)
    if metadata.total_frame_count < 0:
        raise InvalidConfiguration(f"Frame count must not be negative, got {metadata.total_frame_count}")

    frames_per_chunk = math.ceil(duration * rate) + FRAME_MARGIN
    expected_chunk_count = math.ceil(metadata.total_frame_count / frames_per_chunk)
    plan = ChunkPlan(
        chunk_duration_s=duration,
        frames_per_chunk=frames_per_chunk,
        expected_chunk_count=expected_chunk_count,
    )
    LOGGER.debug(
        "Planned chunks fps=%.3f frames=%d duration=%ds -> frames_per_chunk=%d chunks=%d",
        rate,
        metadata.total_frame_count,
        duration,
        frames_per_chunk,
        expected_chunk_count,
    )
    return plan


def frame_timestamp_ns(index: int, frame_rate_hz: float) -> int:
    """Pacing timestamp for a 0-based frame index, truncated to whole nanoseconds."""
    if index < 0:
        raise ValueError(f"Frame index must not be negative, got {index}")
    rate = _check_frame_rate(frame_rate_hz)
    return int(index * (NANOS_PER_SECOND / rate))
