from __future__ import annotations

import argparse
import asyncio
import logging
import sys

import cv2

from facetrack.core.config.settings import TrackerSettings, load_settings
from facetrack.core.detectors.base import NullDetector
from facetrack.core.loop.controller import FrameLoop, LoopState, SetupError
from facetrack.core.types import Frame

WINDOW_NAME = "facetrack"
_QUIT_KEYS = {ord("q"), 27}


def build_settings(args: argparse.Namespace) -> TrackerSettings:
    """Apply CLI overrides on top of YAML/env settings."""

    settings = load_settings()
    overrides = {
        "video_source": args.source,
        "video_path": args.input,
        "detector": args.detector,
        "model_name": args.model,
        "max_subjects": args.max_subjects,
    }
    for name, value in overrides.items():
        if value is not None:
            setattr(settings, name, value)
    if args.flip:
        settings.flip_horizontal = True
    return settings


def _make_display_hook(frame_loop: FrameLoop, args: argparse.Namespace):
    def on_cycle(state: LoopState, frame: Frame) -> None:
        if args.max_cycles and state.cycle >= args.max_cycles:
            frame_loop.request_stop()
        if args.headless:
            return
        surface = frame_loop.surface
        cv2.imshow(WINDOW_NAME, surface.composite(frame) if surface is not None else frame)
        if cv2.waitKey(1) & 0xFF in _QUIT_KEYS:
            frame_loop.request_stop()

    return on_cycle


def run(args: argparse.Namespace) -> int:
    try:
        settings = build_settings(args)
    except ValueError as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return 1
    frame_loop = FrameLoop.from_settings(
        settings,
        detector_factory=NullDetector if args.mock else None,
    )
    frame_loop.on_cycle = _make_display_hook(frame_loop, args)
    try:
        frame_loop.setup()
    except SetupError as exc:
        print(str(exc), file=sys.stderr)
        return 1

    try:
        state = asyncio.run(frame_loop.run())
    except KeyboardInterrupt:
        frame_loop.close()
        return 0
    finally:
        if not args.headless:
            cv2.destroyAllWindows()
    print(f"Stopped after {state.cycle} cycles ({state.fps:.1f} FPS)")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run live face landmark tracking with overlay")
    parser.add_argument("--source", choices=["webcam", "file"], default=None)
    parser.add_argument("--input", default=None, help="Path to video file (with --source file)")
    parser.add_argument("--detector", choices=["yolo_pose", "face_mesh"], default=None)
    parser.add_argument("--model", default=None, help="Ultralytics pose weights")
    parser.add_argument("--max-subjects", type=int, default=None)
    parser.add_argument("--flip", action="store_true", help="Mirror frames before estimation")
    parser.add_argument(
        "--mock", action="store_true", help="Use dummy detector (no model download)"
    )
    parser.add_argument("--headless", action="store_true", help="Do not open a display window")
    parser.add_argument("--max-cycles", type=int, default=0, help="Stop after N cycles (0 = run until q/Esc)")
    return parser


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    return run(build_parser().parse_args(argv))


if __name__ == "__main__":
    sys.exit(main())
