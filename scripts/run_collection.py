#!/usr/bin/env python3
"""CLI for feeding a video and its face tracking data through a DFX collector."""

from __future__ import annotations

import argparse
import logging
import signal
import sys
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence

import yaml

from dfxdriver import __version__
from dfxdriver.annotations.faces import FaceAnnotationSource
from dfxdriver.collection.driver import CollectionDriver
from dfxdriver.collection.sinks import ChunkSink, DirectoryChunkSink, LoggingChunkSink
from dfxdriver.engine.base import open_collector
from dfxdriver.engine.dfx_sdk import DfxEngine, sdk_version
from dfxdriver.errors import DriverError, InvalidConfiguration
from dfxdriver.io_utils import load_yaml, setup_logging
from dfxdriver.planning.chunk_plan import DEFAULT_CHUNK_DURATION_S, check_chunk_duration, plan_chunks
from dfxdriver.types import RunOutcome
from dfxdriver.video.frames import VideoFrameSource
from dfxdriver.viz.overlay import build_overlay


LOGGER = logging.getLogger("scripts.run_collection")

PROG = "dfx-collect"
# Shipped beside the package in a source checkout; absent from wheel installs.
DEFAULT_CONFIG = Path(__file__).resolve().parent.parent / "configs" / "collection.yaml"
DEFAULT_MARKERS = {1000: "This is the 1000th frame"}


class _ArgumentParser(argparse.ArgumentParser):
    """Usage errors exit with status 1 instead of argparse's 2."""

    def error(self, message: str) -> None:  # type: ignore[override]
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


class _VersionAction(argparse.Action):
    def __init__(self, option_strings, dest=argparse.SUPPRESS, default=argparse.SUPPRESS, help=None):
        super().__init__(option_strings=option_strings, dest=dest, default=default, nargs=0, help=help)

    def __call__(self, parser, namespace, values, option_string=None):
        print(f"{parser.prog} {__version__} - {sdk_version()}")
        parser.exit(0)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = _ArgumentParser(prog=PROG, description="DFX SDK Python example program")
    parser.add_argument("video", type=Path, help="Path of video file to process")
    parser.add_argument("faces", type=Path, help="Path of face tracking data")
    parser.add_argument("study", type=Path, help="Path of study file")
    parser.add_argument("-v", "--version", action=_VersionAction, help="show program's version number and exit")
    parser.add_argument("-o", "--output", type=Path, default=None, help="folder to save chunks")
    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG,
        help="Collection configuration YAML (default: configs/collection.yaml in the source checkout, skipped when absent)",
    )
    parser.add_argument(
        "--chunk-duration",
        type=int,
        default=None,
        help="Chunk duration in seconds (default from config, else 5)",
    )
    parser.add_argument(
        "--annotation-index-base",
        type=int,
        choices=(0, 1),
        default=None,
        help="Frame number of the first annotation key (existing files use 1)",
    )
    render_group = parser.add_mutually_exclusive_group()
    render_group.add_argument(
        "--render",
        dest="render",
        action="store_true",
        help="Show the region overlay window",
    )
    render_group.add_argument(
        "--no-render",
        dest="render",
        action="store_false",
        help="Run headless",
    )
    render_group.set_defaults(render=None)
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def _load_config(path: Path) -> Dict[str, Any]:
    if not path.exists():
        if path == DEFAULT_CONFIG:
            LOGGER.debug("No config at %s; using built-in defaults", path)
            return {}
        raise InvalidConfiguration(f"Config file not found: {path}")
    try:
        return load_yaml(path)
    except (ValueError, yaml.YAMLError) as exc:
        raise InvalidConfiguration(f"Unreadable config {path}: {exc}") from exc


def _resolve_chunk_duration(args: argparse.Namespace, cfg: Mapping[str, Any]) -> int:
    if args.chunk_duration is not None:
        return check_chunk_duration(args.chunk_duration)
    return check_chunk_duration(cfg.get("chunk_duration_s", DEFAULT_CHUNK_DURATION_S))


def _resolve_index_base(args: argparse.Namespace, cfg: Mapping[str, Any]) -> int:
    if args.annotation_index_base is not None:
        return int(args.annotation_index_base)
    value = cfg.get("annotation_index_base", 1)
    if isinstance(value, bool) or value not in (0, 1):
        raise InvalidConfiguration(f"annotation_index_base must be 0 or 1, got {value!r}")
    return int(value)


def _resolve_render(args: argparse.Namespace, cfg: Mapping[str, Any]) -> bool:
    if args.render is not None:
        return bool(args.render)
    value = cfg.get("render", True)
    if not isinstance(value, bool):
        raise InvalidConfiguration(f"render must be true or false, got {value!r}")
    return value


def _resolve_markers(cfg: Mapping[str, Any]) -> Dict[int, str]:
    raw = cfg.get("markers")
    if raw is None:
        return dict(DEFAULT_MARKERS)
    try:
        return {int(frame): str(text) for frame, text in raw.items()}
    except (AttributeError, TypeError, ValueError) as exc:
        raise InvalidConfiguration(f"markers must map frame numbers to text: {exc}") from exc


def _build_sink(output: Optional[Path]) -> ChunkSink:
    if output is None:
        return LoggingChunkSink()
    return DirectoryChunkSink(output)


def run(args: argparse.Namespace) -> int:
    cfg = _load_config(args.config)
    chunk_duration = _resolve_chunk_duration(args, cfg)
    index_base = _resolve_index_base(args, cfg)
    render = _resolve_render(args, cfg)
    markers = _resolve_markers(cfg)

    engine = DfxEngine()
    collector = open_collector(engine, args.study)
    LOGGER.info("Engine mode: %s", engine.mode)

    annotations = FaceAnnotationSource.from_file(args.faces, index_base=index_base)

    with VideoFrameSource(args.video) as frames:
        plan = plan_chunks(frames.metadata, chunk_duration)
        sink = _build_sink(args.output)
        overlay = build_overlay(render, frames.metadata.name)
        driver = CollectionDriver(
            collector,
            frames,
            annotations,
            plan,
            frames.metadata,
            sink,
            observer=overlay,
            markers=markers,
        )
        previous_handler = signal.signal(signal.SIGINT, lambda _signum, _frame: driver.request_stop())
        try:
            driver.run()
        except DriverError as exc:
            LOGGER.error("Collection failed: %s", exc)
        finally:
            signal.signal(signal.SIGINT, previous_handler)
            sink.close()
            if overlay is not None:
                overlay.close()

    if driver.state.outcome is RunOutcome.SUCCESS:
        LOGGER.info("Collection finished completely.")
        return 0
    LOGGER.info("Collection interrupted or failed.")
    return 0 if driver.state.outcome is RunOutcome.INTERRUPTED else 1


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    setup_logging(logging.DEBUG if args.debug else logging.INFO)
    try:
        return run(args)
    except DriverError as exc:
        LOGGER.error("%s: %s", type(exc).__name__, exc)
        return 1
    except (OSError, RuntimeError) as exc:
        LOGGER.error("%s", exc)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
