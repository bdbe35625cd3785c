"""Frame loop controller.

Drives acquire -> extract -> render -> sample cycles at a soft target cadence.
Exactly one cycle is in flight at a time: the next one is only scheduled after
the current cycle's render and sample steps complete, so slow inference lowers
throughput instead of piling up overlapping cycles.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

import cv2

from facetrack.core.detectors.base import LandmarkDetector, build_detector
from facetrack.core.landmarks.extractor import CONFIDENCE_THRESHOLD, extract
from facetrack.core.landmarks.selectors import selector_for
from facetrack.core.loop.diagnostics import build_diagnostic, emit_diagnostic
from facetrack.core.loop.performance import PerformanceMonitor
from facetrack.core.overlay.draw import OverlayRenderer
from facetrack.core.overlay.surface import OverlaySurface
from facetrack.core.types import Frame, FrameSnapshot, RawDetection
from facetrack.core.video_sources.base import VideoSource, make_source

if TYPE_CHECKING:
    from facetrack.core.config.settings import TrackerSettings

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_MS = 100.0
DEFAULT_DIAGNOSTIC_EVERY_N = 30


class Phase(str, Enum):
    IDLE = "idle"
    ACQUIRING = "acquiring"
    EXTRACTING = "extracting"
    RENDERING = "rendering"
    SAMPLING = "sampling"
    WAITING = "waiting"
    FAILED = "failed"
    STOPPED = "stopped"


class SetupError(RuntimeError):
    """Video source, detector or surface could not be initialized."""


@dataclass
class LoopState:
    """Controller-owned state threaded through each cycle."""

    phase: Phase = Phase.IDLE
    cycle: int = 0
    snapshot: FrameSnapshot = field(default_factory=list)
    frame_size: tuple[int, int] = (0, 0)
    fps: float = 0.0


CycleHook = Callable[[LoopState, Frame], None]
DiagnosticHook = Callable[[list[dict[str, Any]]], None]


class FrameLoop:
    """Runs the landmark pipeline as a single cooperative asyncio task.

    Setup failures are fatal (`SetupError`); every other failure is contained
    inside the cycle that produced it.
    """

    def __init__(
        self,
        source_factory: Callable[[], VideoSource],
        detector_factory: Callable[[], LandmarkDetector],
        selector: Mapping[str, int],
        *,
        threshold: float = CONFIDENCE_THRESHOLD,
        interval_ms: float = DEFAULT_INTERVAL_MS,
        max_subjects: int = 6,
        flip_horizontal: bool = False,
        surface_size: tuple[int, int] = (640, 480),
        diagnostic_every_n: int = DEFAULT_DIAGNOSTIC_EVERY_N,
        monitor: PerformanceMonitor | None = None,
        on_cycle: CycleHook | None = None,
        on_diagnostic: DiagnosticHook | None = None,
    ) -> None:
        self._source_factory = source_factory
        self._detector_factory = detector_factory
        self.selector = selector
        self.threshold = float(threshold)
        self.interval_s = max(0.0, float(interval_ms)) / 1000.0
        self.max_subjects = int(max_subjects)
        self.flip_horizontal = bool(flip_horizontal)
        self.surface_size = surface_size
        self.diagnostic_every_n = int(diagnostic_every_n)
        self.monitor = monitor or PerformanceMonitor()
        self.on_cycle = on_cycle
        self.on_diagnostic = on_diagnostic

        self.source: VideoSource | None = None
        self.detector: LandmarkDetector | None = None
        self.surface: OverlaySurface | None = None
        self.renderer = OverlayRenderer()
        self.state = LoopState()
        self.last_error: str | None = None
        self._stop_requested = False
        self._wake: asyncio.Event | None = None
        self._task: asyncio.Task[LoopState] | None = None

    @classmethod
    def from_settings(
        cls,
        settings: TrackerSettings,
        *,
        detector_factory: Callable[[], LandmarkDetector] | None = None,
        **hooks: Any,
    ) -> FrameLoop:
        """Build a loop from `TrackerSettings` (source/detector built at setup)."""

        return cls(
            source_factory=lambda: make_source(settings),
            detector_factory=detector_factory or (lambda: build_detector(settings)),
            selector=selector_for(settings.detector),
            threshold=settings.confidence_threshold,
            interval_ms=settings.cycle_interval_ms,
            max_subjects=settings.max_subjects,
            flip_horizontal=settings.flip_horizontal,
            surface_size=(settings.frame_width, settings.frame_height),
            diagnostic_every_n=settings.diagnostic_every_n,
            monitor=PerformanceMonitor(window_ms=settings.perf_window_ms),
            **hooks,
        )

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def stop_requested(self) -> bool:
        return self._stop_requested

    def setup(self) -> None:
        """Open the source, load the detector and create the surface.

        A successful setup re-arms the loop: a previous failure or stop request
        is cleared so the next `run()` executes cycles again.
        """

        try:
            self.source = self._source_factory()
            self.detector = self._detector_factory()
            self.surface = OverlaySurface(*self.surface_size)
        except Exception as exc:
            self.state.phase = Phase.FAILED
            self.last_error = f"Setup failed: {exc}"
            self.close()
            raise SetupError(self.last_error) from exc
        self.renderer.surface = self.surface
        self.last_error = None
        self.state.phase = Phase.IDLE
        self._stop_requested = False

    def start(self) -> bool:
        """Set up and schedule the loop on the running event loop.

        Returns False (with `last_error` set) when setup fails.
        """

        if self.running:
            return True
        try:
            self.setup()
        except SetupError:
            logger.exception("Frame loop setup failed")
            return False
        self._task = asyncio.get_running_loop().create_task(self.run())
        return True

    def request_stop(self) -> None:
        """Ask the loop to finish after the in-flight cycle (if any)."""

        self._stop_requested = True
        if self._wake is not None:
            self._wake.set()

    async def stop(self) -> None:
        self.request_stop()
        if self._task is not None:
            await self._task
            self._task = None

    async def _estimate(self, frame: Frame) -> list[RawDetection]:
        """Await the detector; any failure counts as an empty frame."""

        detector = self.detector
        if detector is None:
            return []
        try:
            if inspect.iscoroutinefunction(detector.estimate):
                result = await detector.estimate(
                    frame, max_subjects=self.max_subjects, flip_horizontal=self.flip_horizontal
                )
            else:
                result = await asyncio.to_thread(
                    detector.estimate,
                    frame,
                    max_subjects=self.max_subjects,
                    flip_horizontal=self.flip_horizontal,
                )
        except Exception:
            logger.warning("Detector failed; treating frame as empty", exc_info=True)
            return []
        return list(result or [])

    def _acquire(self) -> tuple[Frame | None, int, int]:
        if self.source is None:
            return None, 0, 0
        try:
            return self.source.get_frame()
        except Exception:
            logger.warning("Frame acquisition failed", exc_info=True)
            return None, 0, 0

    async def run_cycle(self, state: LoopState) -> LoopState:
        """Run one acquire -> extract -> render -> sample cycle."""

        state.phase = Phase.ACQUIRING
        frame, width, height = self._acquire()
        if frame is None or width <= 0 or height <= 0:
            # Source not ready yet: no data work this cycle.
            return state
        if self.flip_horizontal:
            # Mirror once: the detector and the host see the same frame, so
            # landmarks line up with the displayed image.
            frame = cv2.flip(frame, 1)

        if (width, height) != state.frame_size:
            state.frame_size = (width, height)
            if self.surface is not None:
                self.surface.resize(width, height)

        state.phase = Phase.EXTRACTING
        raw = await self._estimate(frame)
        snapshot = extract(raw, self.selector, self.threshold)

        state.phase = Phase.RENDERING
        self.renderer.render(snapshot, fps=state.fps or None)

        state.phase = Phase.SAMPLING
        state.cycle += 1
        state.snapshot = snapshot
        rate = self.monitor.tick()
        if rate is not None:
            state.fps = rate

        if self.diagnostic_every_n and snapshot and state.cycle % self.diagnostic_every_n == 0:
            size = self.surface.size if self.surface is not None else state.frame_size
            payload = build_diagnostic(snapshot, size)
            emit_diagnostic(payload)
            if self.on_diagnostic is not None:
                self.on_diagnostic(payload)

        if self.on_cycle is not None:
            self.on_cycle(state, frame)
        return state

    async def run(self) -> LoopState:
        """Run cycles until `request_stop()`; returns the final state."""

        if self.state.phase is Phase.FAILED:
            return self.state
        if self.source is None:
            self.setup()

        # Events bind to the first event loop that waits on them; each run may
        # happen on a new loop (API engine restarts, repeated asyncio.run).
        wake = self._wake = asyncio.Event()
        if self._stop_requested:
            wake.set()

        state = self.state
        try:
            while not self._stop_requested:
                started = time.perf_counter()
                try:
                    state = await self.run_cycle(state)
                except Exception:
                    logger.exception("Frame loop cycle failed")
                if self._stop_requested:
                    break
                state.phase = Phase.WAITING
                delay = max(0.0, self.interval_s - (time.perf_counter() - started))
                try:
                    # Interruptible: a stop request cancels the pending cycle.
                    await asyncio.wait_for(wake.wait(), timeout=delay)
                except asyncio.TimeoutError:
                    pass
        finally:
            state.phase = Phase.STOPPED
            self.state = state
            self._wake = None
            self.close()
        return state

    def close(self) -> None:
        """Release the source and the detector (when it exposes `close`)."""

        source, self.source = self.source, None
        if source is not None:
            source.close()
        detector, self.detector = self.detector, None
        closer = getattr(detector, "close", None)
        if callable(closer):
            closer()
