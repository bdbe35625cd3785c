"""Shared type definitions used across facetrack.

Detector adapters produce `RawDetection`s; everything downstream of the landmark
extractor only sees `NamedLandmark`s grouped into `SubjectRecord`s.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np

Frame = np.ndarray

BBox = tuple[float, float, float, float]
Point = tuple[float, float]

LANDMARK_NAMES: tuple[str, ...] = ("nose", "left_eye", "right_eye", "left_ear", "right_ear")


def ordered_bbox(bbox: BBox) -> BBox:
    """Return `bbox` as (x1, y1, x2, y2) with x1 <= x2 and y1 <= y2."""

    x1, y1, x2, y2 = (float(v) for v in bbox)
    return (min(x1, x2), min(y1, y2), max(x1, x2), max(y1, y2))


@dataclass
class RawDetection:
    """Raw detector output for one subject, in pixel coordinates."""

    points: np.ndarray  # shape: (N, 2) or (N, 3) -> x, y[, z]
    scores: np.ndarray | None = None  # shape: (N,)
    bbox: BBox | None = None
    confidence: float | None = None
    track_id: int | None = None


@dataclass(frozen=True)
class NamedLandmark:
    """A single named landmark that survived confidence filtering."""

    name: str
    x: float
    y: float
    score: float
    source_index: int
    z: float | None = None


@dataclass(frozen=True)
class SubjectRecord:
    """Normalized per-subject output of the landmark extractor."""

    subject_id: int
    landmarks: tuple[NamedLandmark, ...] = ()
    bbox: BBox | None = None
    confidence: float = 0.0

    def landmark(self, name: str) -> NamedLandmark | None:
        for lm in self.landmarks:
            if lm.name == name:
                return lm
        return None

    @property
    def mean_confidence(self) -> float:
        """Mean landmark score, 0.0 when no landmark was retained."""

        if not self.landmarks:
            return 0.0
        return sum(lm.score for lm in self.landmarks) / len(self.landmarks)


FrameSnapshot = list[SubjectRecord]


@dataclass
class PerformanceSample:
    """Throughput counters for the current reporting window."""

    frame_count: int = 0
    window_start_ms: float = 0.0


@dataclass
class SnapshotPayload:
    """Per-cycle payload handed to hosts (API engine, CLI)."""

    cycle: int
    timestamp: float
    subjects: FrameSnapshot = field(default_factory=list)
    fps: float = 0.0
    frame_size: tuple[int, int] = (0, 0)
