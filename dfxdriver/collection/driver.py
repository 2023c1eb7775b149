"""Frame-by-frame collection driver.

The driver owns the collector for the whole run. Each iteration reads one
frame, attaches its face annotation, submits it, and reacts to the
collector state:

* ``CHUNKREADY`` - fetch the chunk once and hand it to the sink.
* ``COMPLETED`` - fetch once, hand it off, stop with success.
* ``ERROR`` - stop with failure; the collector is not touched again.

When the video runs out first, the pending (possibly partial) chunk is
fetched one last time before finishing.
"""

from __future__ import annotations

import logging
from typing import Callable, Mapping, Optional

from dfxdriver.annotations.faces import FaceAnnotationSource
from dfxdriver.collection.sinks import ChunkSink
from dfxdriver.engine.base import Collector
from dfxdriver.errors import EngineError
from dfxdriver.planning.chunk_plan import frame_timestamp_ns
from dfxdriver.types import (
    ChunkEvent,
    ChunkPlan,
    CollectorState,
    DriverPhase,
    DriverState,
    ExtractionStep,
    FrameRecord,
    FrameSource,
    RunOutcome,
    VideoStreamMetadata,
)

LOGGER = logging.getLogger("dfxdriver.collection")

# Returning True asks the driver to stop at the next frame boundary.
StepObserver = Callable[[ExtractionStep], Optional[bool]]

TRIGGER_CHUNKREADY = "chunkready"
TRIGGER_COMPLETED = "completed"
TRIGGER_DRAIN = "drain"


class CollectionDriver:
    """Drives one collection run from the first frame to a terminal state."""

    def __init__(
        self,
        collector: Collector,
        frames: FrameSource,
        annotations: FaceAnnotationSource,
        plan: ChunkPlan,
        metadata: VideoStreamMetadata,
        sink: ChunkSink,
        observer: Optional[StepObserver] = None,
        markers: Optional[Mapping[int, str]] = None,
    ) -> None:
        self.collector = collector
        self.frames = frames
        self.annotations = annotations
        self.plan = plan
        self.metadata = metadata
        self.sink = sink
        self.observer = observer
        # Keyed by 1-based frame number.
        self.markers = dict(markers or {})
        self.state = DriverState()
        self._last_record: Optional[FrameRecord] = None

    def request_stop(self) -> None:
        """Ask the run to end at the next iteration boundary."""
        self.state.stop_requested = True

    def run(self) -> DriverState:
        if self.state.phase is not DriverPhase.INIT:
            raise RuntimeError(f"CollectionDriver.run() called in phase {self.state.phase.value}")
        try:
            self._start_collection()
            self.state.phase = DriverPhase.RUNNING
            self._read_frames()
        except Exception as exc:
            # Fatal errors still leave the run in DONE(failure).
            if self.state.phase is not DriverPhase.DONE:
                self.state.finish(RunOutcome.FAILURE, str(exc))
            raise

        LOGGER.info(
            "Collection %s: frames=%d submitted=%d chunks=%d empty=%d",
            self.state.outcome.value if self.state.outcome else "unfinished",
            self.state.frames_read,
            self.state.frames_submitted,
            self.state.chunks_dispatched,
            self.state.empty_chunks,
        )
        return self.state

    def _read_frames(self) -> None:
        total = self.metadata.total_frame_count
        progress_step = max(1, total // 20) if total else 500
        next_progress_log = progress_step

        while self.state.phase is DriverPhase.RUNNING:
            if self.state.stop_requested:
                LOGGER.info("Stop requested after %d frames", self.state.frames_read)
                self.state.finish(RunOutcome.INTERRUPTED)
                break

            image = self.frames.read()
            if image is None or image.size == 0:
                self._drain()
                break

            record = FrameRecord(
                index=self.state.next_index,
                timestamp_ns=frame_timestamp_ns(self.state.next_index, self.metadata.frame_rate_hz),
                image=image,
            )
            self.state.frames_read += 1
            self._last_record = record
            self._process(record)

            if self.state.frames_read >= next_progress_log:
                self._log_progress()
                while next_progress_log <= self.state.frames_read:
                    next_progress_log += progress_step

    def _start_collection(self) -> None:
        self.collector.configure(
            target_fps=self.metadata.frame_rate_hz,
            chunk_duration_s=self.plan.chunk_duration_s,
            number_chunks=self.plan.expected_chunk_count,
        )
        LOGGER.info(
            "Collector configured fps=%.2f chunk_duration=%ds frames_per_chunk=%d number_chunks=%d",
            self.metadata.frame_rate_hz,
            self.plan.chunk_duration_s,
            self.plan.frames_per_chunk,
            self.plan.expected_chunk_count,
        )
        for constraint in self.collector.enabled_constraints():
            LOGGER.info("Enabled constraint: %s", constraint)
        self.collector.start_collection()

    def _process(self, record: FrameRecord) -> None:
        face = self.annotations.lookup(record.index)

        markers = [self.markers[record.number]] if record.number in self.markers else []
        result = self.collector.submit_frame(record, [face], markers)
        self.state.frames_submitted += 1
        self.state.last_collector_state = result

        if result is CollectorState.ERROR:
            message = self.collector.last_error_message()
            self.state.finish(RunOutcome.FAILURE, message)
            raise EngineError(message, frame_index=record.index)

        if result is CollectorState.CHUNKREADY:
            self._dispatch_chunk(TRIGGER_CHUNKREADY)
        elif result is CollectorState.COMPLETED:
            self._dispatch_chunk(TRIGGER_COMPLETED)
            LOGGER.info("COMPLETED at frame %d", record.number)
            self.state.finish(RunOutcome.SUCCESS)
            return

        if self.observer is not None:
            step = ExtractionStep(
                record=record,
                collector_state=result,
                regions=self.collector.region_polygons(),
                total_frames=self.metadata.total_frame_count,
            )
            if self.observer(step):
                self.request_stop()

    def _drain(self) -> None:
        self.state.phase = DriverPhase.DRAINING
        LOGGER.info("End of video after %d frames; collecting final chunk", self.state.frames_read)
        self._dispatch_chunk(TRIGGER_DRAIN)
        self.state.finish(RunOutcome.SUCCESS)

    def _dispatch_chunk(self, trigger: str) -> None:
        payload = self.collector.get_chunk()
        self.state.chunk_fetches += 1
        if payload is None:
            self.state.empty_chunks += 1
            LOGGER.info("Got empty chunk (%s)", trigger)
            return

        record = self._last_record
        event = ChunkEvent(
            number=self.state.chunks_dispatched + 1,
            payload=payload,
            frame_index=record.index if record is not None else -1,
            timestamp_ns=record.timestamp_ns if record is not None else 0,
            trigger=trigger,
        )
        self.sink.write(event)
        self.state.chunks_dispatched += 1

    def _log_progress(self) -> None:
        total = self.metadata.total_frame_count
        if total:
            LOGGER.info(
                "Collection progress %.1f%% (%d/%d frames, chunks=%d)",
                self.state.frames_read / total * 100.0,
                self.state.frames_read,
                total,
                self.state.chunks_dispatched,
            )
        else:
            LOGGER.info(
                "Collection progress: %d frames (chunks=%d)",
                self.state.frames_read,
                self.state.chunks_dispatched,
            )
