"""Detector adapter interface and factory.

Inference itself is a black box: adapters only translate a backend's output
into `RawDetection`s in full-frame pixel coordinates.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

import numpy as np

from facetrack.core.types import RawDetection

if TYPE_CHECKING:
    from facetrack.core.config.settings import TrackerSettings


class LandmarkDetector(Protocol):
    """Minimal detector interface expected by the frame loop.

    `estimate` may be a plain method or a coroutine function, and may raise.
    The frame loop mirrors the frame itself when `flip_horizontal` is set, so
    adapters must not flip again: landmarks are reported in the coordinates of
    the frame they receive.
    """

    def estimate(
        self,
        frame: np.ndarray,
        *,
        max_subjects: int,
        flip_horizontal: bool,
    ) -> Any:
        """Return (or resolve to) a list of `RawDetection`."""


class NullDetector:
    """Detector that never finds anyone (offline smoke runs, `--mock`)."""

    def estimate(self, frame: np.ndarray, *, max_subjects: int, flip_horizontal: bool) -> list[RawDetection]:
        return []


def build_detector(settings: TrackerSettings) -> LandmarkDetector:
    """Instantiate the configured detector backend.

    Backends without native identity tracking are wrapped in an IoU tracker when
    `enable_tracking` is set.
    """

    if settings.detector == "yolo_pose":
        from facetrack.core.detectors.yolo import YoloPoseDetector

        return YoloPoseDetector(
            settings.model_name,
            conf=settings.confidence_threshold,
            track=settings.enable_tracking,
        )
    if settings.detector == "face_mesh":
        from facetrack.core.detectors.face_mesh import FaceMeshDetector
        from facetrack.core.trackers.simple_tracker import TrackingDetector

        mesh = FaceMeshDetector(
            max_num_faces=settings.max_subjects,
            min_detection_confidence=settings.confidence_threshold,
        )
        return TrackingDetector(mesh) if settings.enable_tracking else mesh
    raise ValueError(f"Unknown detector: {settings.detector}")
