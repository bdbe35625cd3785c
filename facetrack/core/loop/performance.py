"""Throughput monitor: frames per wall-clock window, reported periodically."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from facetrack.core.types import PerformanceSample

logger = logging.getLogger(__name__)

REPORT_WINDOW_MS = 5000.0


def _monotonic_ms() -> float:
    return time.monotonic() * 1000.0


class PerformanceMonitor:
    """Counts completed cycles and reports the rate once per window.

    The window starts at construction time (or at the last report); a report
    happens on the first tick after more than `window_ms` has elapsed.
    """

    def __init__(
        self,
        window_ms: float = REPORT_WINDOW_MS,
        clock: Callable[[], float] = _monotonic_ms,
    ) -> None:
        self.window_ms = float(window_ms)
        self._clock = clock
        self.sample = PerformanceSample(frame_count=0, window_start_ms=clock())
        self.fps: float = 0.0

    def tick(self, now_ms: float | None = None) -> float | None:
        """Record one completed cycle. Returns the rate when a report is due."""

        now = self._clock() if now_ms is None else float(now_ms)
        self.sample.frame_count += 1
        elapsed = now - self.sample.window_start_ms
        if elapsed <= self.window_ms:
            return None

        rate = self.sample.frame_count / (elapsed / 1000.0)
        logger.info("Performance: %.1f FPS", rate)
        self.fps = rate
        self.sample = PerformanceSample(frame_count=0, window_start_ms=now)
        return rate
