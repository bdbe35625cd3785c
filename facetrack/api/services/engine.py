from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections.abc import AsyncGenerator
from typing import Any

import cv2

from facetrack.core.config.settings import TrackerSettings
from facetrack.core.loop.controller import FrameLoop, LoopState, Phase
from facetrack.core.types import Frame, SnapshotPayload

logger = logging.getLogger(__name__)


class LandmarkEngine:
    """Hosts a `FrameLoop` on a private event loop in a background thread.

    After each completed cycle the overlay is composited onto the video frame
    and JPEG-encoded; the latest JPEG and snapshot are kept for the HTTP/WS
    routes.
    """

    def __init__(self, settings: TrackerSettings, frame_loop: FrameLoop | None = None) -> None:
        self.settings = settings
        self.frame_loop = frame_loop or FrameLoop.from_settings(settings)
        self.frame_loop.on_cycle = self._on_cycle
        self.frame_loop.on_diagnostic = self._on_diagnostic
        self._lock = threading.Lock()
        self._thread: threading.Thread | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._latest_frame: bytes | None = None
        self._latest_payload: SnapshotPayload | None = None
        self._latest_diagnostic: list[dict[str, Any]] | None = None
        self.last_error: str | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Set up the loop and run it in a daemon thread.

        Setup failures are recorded in `last_error`; the thread is not started.
        Safe to call multiple times.
        """

        if self.running:
            return
        if not self._setup():
            return
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._thread_main, daemon=True)
        self._thread.start()

    def _setup(self) -> bool:
        try:
            self.frame_loop.setup()
        except Exception:
            self.last_error = self.frame_loop.last_error or "Failed to initialize frame loop"
            logger.exception(self.last_error)
            return False
        self.last_error = None
        return True

    def _thread_main(self) -> None:
        loop = self._loop
        assert loop is not None
        asyncio.set_event_loop(loop)
        try:
            loop.run_until_complete(self.frame_loop.run())
        except Exception:
            self.last_error = "Frame loop crashed"
            logger.exception(self.last_error)
        finally:
            loop.close()

    def stop(self) -> None:
        """Request a clean stop and wait for the in-flight cycle to finish."""

        loop = self._loop
        if loop is not None and not loop.is_closed():
            try:
                loop.call_soon_threadsafe(self.frame_loop.request_stop)
            except RuntimeError:
                # Loop already closed between the check and the call.
                pass
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=2)
        self._thread = None
        self._loop = None

    def _on_cycle(self, state: LoopState, frame: Frame) -> None:
        surface = self.frame_loop.surface
        annotated = surface.composite(frame) if surface is not None else frame
        encode_param = [int(cv2.IMWRITE_JPEG_QUALITY), int(self.settings.jpeg_quality)]
        ok, jpg = cv2.imencode(".jpg", annotated, encode_param)
        payload = SnapshotPayload(
            cycle=state.cycle,
            timestamp=time.time(),
            subjects=list(state.snapshot),
            fps=state.fps,
            frame_size=state.frame_size,
        )
        with self._lock:
            if ok:
                self._latest_frame = jpg.tobytes()
            self._latest_payload = payload

    def _on_diagnostic(self, payload: list[dict[str, Any]]) -> None:
        with self._lock:
            self._latest_diagnostic = payload

    def latest_frame(self) -> bytes | None:
        with self._lock:
            return self._latest_frame

    def latest_payload(self) -> SnapshotPayload | None:
        with self._lock:
            return self._latest_payload

    def latest_diagnostic(self) -> list[dict[str, Any]] | None:
        with self._lock:
            return self._latest_diagnostic

    def phase(self) -> Phase:
        return self.frame_loop.state.phase

    async def mjpeg_generator(self) -> AsyncGenerator[bytes, None]:
        """Yield MJPEG multipart chunks for HTTP streaming."""

        last_sent = None
        while True:
            frame = self.latest_frame()
            if frame is not None and frame != last_sent:
                yield (b"--frame\r\n" b"Content-Type: image/jpeg\r\n\r\n" + frame + b"\r\n")
                last_sent = frame
            await asyncio.sleep(0.02)

    async def snapshot_stream(self) -> AsyncGenerator[SnapshotPayload, None]:
        """Yield each new per-cycle payload for WebSocket streaming."""

        last_cycle = -1
        while True:
            payload = self.latest_payload()
            if payload is not None and payload.cycle != last_cycle:
                last_cycle = payload.cycle
                yield payload
            await asyncio.sleep(0.02)
