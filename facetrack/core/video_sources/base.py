"""Video source abstractions.

The frame loop consumes frames through `VideoSource.get_frame()`, which returns
the frame together with its pixel dimensions. A source that is not ready yet
reports `(None, 0, 0)`.
"""

from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING

import cv2

from facetrack.core.types import Frame

if TYPE_CHECKING:
    from facetrack.core.config.settings import TrackerSettings

logger = logging.getLogger(__name__)

FrameResult = tuple[Frame | None, int, int]

NO_FRAME: FrameResult = (None, 0, 0)


def _with_size(frame: Frame | None) -> FrameResult:
    if frame is None:
        return NO_FRAME
    h, w = frame.shape[:2]
    return frame, int(w), int(h)


class VideoSource(ABC):
    """Base interface for anything that can produce video frames."""

    @abstractmethod
    def get_frame(self) -> FrameResult:
        """Return `(frame, width, height)`; `(None, 0, 0)` when unavailable."""

        raise NotImplementedError

    @abstractmethod
    def close(self) -> None:
        """Release any underlying resources."""

        raise NotImplementedError


class WebcamSource(VideoSource):
    """Webcam capture that always hands out the newest frame.

    A reader thread continuously drains the driver buffer so a slow frame loop
    never works on stale frames.
    """

    def __init__(self, index: int = 0, width: int = 640, height: int = 480) -> None:
        self.cap = cv2.VideoCapture(index)
        if not self.cap.isOpened():
            self.cap.release()
            raise RuntimeError(f"Failed to open camera index {index}")

        try:
            self.cap.set(cv2.CAP_PROP_BUFFERSIZE, 1)
        except cv2.error:
            pass
        self.cap.set(cv2.CAP_PROP_FRAME_WIDTH, width)
        self.cap.set(cv2.CAP_PROP_FRAME_HEIGHT, height)
        logger.info("Opened camera index=%s requested=%sx%s", index, width, height)

        self._lock = threading.Lock()
        self._running = True
        self._latest_frame: Frame | None = None
        self._reader_thread = threading.Thread(target=self._reader_loop, daemon=True)
        self._reader_thread.start()

    def _reader_loop(self) -> None:
        while self._running:
            ok, frame = self.cap.read()
            if ok:
                with self._lock:
                    self._latest_frame = frame
            else:
                time.sleep(0.01)

    def get_frame(self) -> FrameResult:
        with self._lock:
            frame = self._latest_frame
        return _with_size(frame)

    def close(self) -> None:
        """Stop the background reader thread and release the camera."""

        self._running = False
        try:
            if self._reader_thread.is_alive():
                self._reader_thread.join(timeout=1)
        finally:
            self.cap.release()


class FileSource(VideoSource):
    """Video file played back against the wall clock; rewinds at EOF.

    `get_frame()` never sleeps. It returns the frame that is due at the
    current playback time, skipping (`grab`) any frames the caller was too
    slow to consume, so a 100 ms loop still plays a 30 fps file in real time.
    Files without a usable fps are read one frame per call.
    """

    def __init__(self, path: str, clock: Callable[[], float] = time.perf_counter) -> None:
        self._path = path
        self._clock = clock
        self.cap = cv2.VideoCapture(path)
        if not self.cap.isOpened():
            raise RuntimeError(f"Failed to open video source: {path}")
        fps = float(self.cap.get(cv2.CAP_PROP_FPS) or 0.0)
        self._source_fps: float | None = fps if fps > 0.0 else None
        self._start: float | None = None
        # Index of the most recently decoded frame (-1 before the first one).
        self._position = -1
        self._latest: Frame | None = None

    @property
    def position(self) -> int:
        return self._position

    def _due_index(self) -> int:
        if self._start is None:
            self._start = self._clock()
        if self._source_fps is None:
            return self._position + 1
        return int((self._clock() - self._start) * self._source_fps)

    def _rewind(self) -> bool:
        if not self.cap.set(cv2.CAP_PROP_POS_FRAMES, 0):
            return False
        self._start = self._clock()
        self._position = -1
        return True

    def get_frame(self) -> FrameResult:
        due = self._due_index()
        if due <= self._position:
            return _with_size(self._latest)

        while self._position < due:
            if not self.cap.grab():
                if not self._rewind() or not self.cap.grab():
                    return NO_FRAME
                self._position = 0
                break
            self._position += 1

        ok, frame = self.cap.retrieve()
        if not ok:
            return NO_FRAME
        self._latest = frame
        return _with_size(frame)

    def close(self) -> None:
        self.cap.release()


def make_source(settings: TrackerSettings) -> VideoSource:
    """Instantiate the configured `VideoSource`."""

    if settings.video_source == "file":
        if not settings.video_path:
            raise RuntimeError("video_source=file requires video_path")
        video_path = Path(settings.video_path)
        if not video_path.exists():
            raise RuntimeError(f"Video path not found: {video_path}")
        return FileSource(str(video_path))
    return WebcamSource(settings.camera_index, settings.frame_width, settings.frame_height)
