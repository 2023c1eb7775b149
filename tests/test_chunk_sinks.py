import logging

import pandas as pd
import pytest

from dfxdriver.collection.sinks import MANIFEST_COLUMNS, DirectoryChunkSink, LoggingChunkSink
from dfxdriver.types import ChunkEvent


def _event(number: int, payload: bytes, trigger: str = "chunkready") -> ChunkEvent:
    return ChunkEvent(
        number=number,
        payload=payload,
        frame_index=number * 150 - 1,
        timestamp_ns=(number * 150 - 1) * 33_333_333,
        trigger=trigger,
    )


def test_directory_sink_writes_payloads_and_manifest(tmp_path):
    out_dir = tmp_path / "chunks"
    sink = DirectoryChunkSink(out_dir)

    sink.write(_event(1, b"\x00\x01\x02"))
    sink.write(_event(2, b"tail", trigger="drain"))
    sink.close()

    assert (out_dir / "chunk_0001.bin").read_bytes() == b"\x00\x01\x02"
    assert (out_dir / "chunk_0002.bin").read_bytes() == b"tail"

    manifest = pd.read_csv(out_dir / "chunks.csv")
    assert list(manifest.columns) == MANIFEST_COLUMNS
    assert manifest["file"].tolist() == ["chunk_0001.bin", "chunk_0002.bin"]
    assert manifest["bytes"].tolist() == [3, 4]
    assert manifest["trigger"].tolist() == ["chunkready", "drain"]


def test_directory_sink_writes_header_only_manifest_without_chunks(tmp_path):
    sink = DirectoryChunkSink(tmp_path)
    sink.close()

    manifest = pd.read_csv(tmp_path / "chunks.csv")
    assert manifest.empty
    assert list(manifest.columns) == MANIFEST_COLUMNS


def test_directory_sink_rejects_writes_after_close(tmp_path):
    sink = DirectoryChunkSink(tmp_path)
    sink.close()
    sink.close()  # second close is a no-op

    with pytest.raises(RuntimeError):
        sink.write(_event(1, b"late"))


def test_logging_sink_counts_and_logs(caplog):
    sink = LoggingChunkSink()

    with caplog.at_level(logging.INFO, logger="dfxdriver.collection.sinks"):
        sink.write(_event(1, b"abcd"))

    assert sink.count == 1
    assert "Got chunk 1 with 4 bytes" in caplog.text
