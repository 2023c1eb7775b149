"""Destinations for chunk payloads retrieved from the collector."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List

import pandas as pd

from dfxdriver.io_utils import ensure_dir
from dfxdriver.types import ChunkEvent

LOGGER = logging.getLogger("dfxdriver.collection.sinks")

MANIFEST_COLUMNS = ["number", "file", "bytes", "frame_index", "timestamp_ns", "trigger"]


class ChunkSink(ABC):
    @abstractmethod
    def write(self, event: ChunkEvent) -> None:
        """Consume one chunk. Called at most once per chunk."""

    def close(self) -> None:
        return None


class LoggingChunkSink(ChunkSink):
    """Logs chunk arrivals and discards the payload."""

    def __init__(self) -> None:
        self.count = 0

    def write(self, event: ChunkEvent) -> None:
        self.count += 1
        LOGGER.info(
            "Got chunk %d with %d bytes (frame %d, %s)",
            event.number,
            event.size,
            event.frame_index,
            event.trigger,
        )


class DirectoryChunkSink(ChunkSink):
    """Writes each payload to ``chunk_NNNN.bin`` and a ``chunks.csv`` manifest on close."""

    def __init__(self, output_dir: Path, manifest_name: str = "chunks.csv") -> None:
        self.output_dir = ensure_dir(Path(output_dir))
        self.manifest_path = self.output_dir / manifest_name
        self.rows: List[Dict[str, Any]] = []
        self._closed = False

    def chunk_path(self, number: int) -> Path:
        return self.output_dir / f"chunk_{number:04d}.bin"

    def write(self, event: ChunkEvent) -> None:
        if self._closed:
            raise RuntimeError("DirectoryChunkSink is closed")
        path = self.chunk_path(event.number)
        path.write_bytes(event.payload)
        self.rows.append(
            {
                "number": event.number,
                "file": path.name,
                "bytes": event.size,
                "frame_index": event.frame_index,
                "timestamp_ns": event.timestamp_ns,
                "trigger": event.trigger,
            }
        )
        LOGGER.info("Saved chunk %d (%d bytes) to %s", event.number, event.size, path)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        df = pd.DataFrame(self.rows, columns=MANIFEST_COLUMNS)
        df.to_csv(self.manifest_path, index=False)
        LOGGER.info("Chunk manifest written to %s (%d chunks)", self.manifest_path, len(df))
