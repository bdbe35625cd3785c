"""Raw detector output -> normalized `SubjectRecord`s.

Extraction is a pure function: the only inputs are the raw detections, the
selector table and the confidence threshold.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Mapping
from dataclasses import replace

import numpy as np

from facetrack.core.types import NamedLandmark, RawDetection, SubjectRecord, ordered_bbox

logger = logging.getLogger(__name__)

# Shared by extraction, rendering and the settings default.
CONFIDENCE_THRESHOLD = 0.3


class MalformedDetection(ValueError):
    """Raised for a raw detection that cannot be interpreted at all."""


def _points_array(det: RawDetection) -> np.ndarray:
    points = getattr(det, "points", None)
    if points is None:
        raise MalformedDetection("detection has no points")
    try:
        arr = np.asarray(points, dtype=float)
    except (TypeError, ValueError) as exc:
        raise MalformedDetection(f"non-numeric points: {exc}") from exc
    if arr.ndim != 2 or arr.shape[1] < 2:
        raise MalformedDetection(f"points must have shape (N, 2|3), got {arr.shape}")
    return arr


def _scores_array(det: RawDetection, n_points: int) -> np.ndarray | None:
    if det.scores is None:
        return None
    try:
        scores = np.asarray(det.scores, dtype=float).reshape(-1)
    except (TypeError, ValueError) as exc:
        raise MalformedDetection(f"non-numeric scores: {exc}") from exc
    if scores.shape[0] < n_points:
        raise MalformedDetection("fewer scores than points")
    return scores


def _clamp_score(value: float) -> float:
    return min(1.0, max(0.0, float(value)))


def _landmark_score(scores: np.ndarray | None, index: int, subject_conf: float | None) -> float:
    """Explicit per-landmark score, else subject confidence, else 1.0."""

    if scores is not None:
        return float(scores[index])
    if subject_conf is not None:
        return float(subject_conf)
    return 1.0


def extract_subject(
    det: RawDetection,
    ordinal: int,
    selector: Mapping[str, int],
    threshold: float = CONFIDENCE_THRESHOLD,
) -> SubjectRecord:
    """Build one `SubjectRecord`; raises `MalformedDetection` on unusable input."""

    points = _points_array(det)
    n_points = int(points.shape[0])
    scores = _scores_array(det, n_points)
    subject_conf = None if det.confidence is None else float(det.confidence)

    landmarks: list[NamedLandmark] = []
    for name, index in selector.items():
        if index < 0 or index >= n_points:
            continue
        row = points[index]
        x, y = float(row[0]), float(row[1])
        z = float(row[2]) if row.shape[0] > 2 else None
        if not (math.isfinite(x) and math.isfinite(y)):
            continue
        if z is not None and not math.isfinite(z):
            z = None
        score = _landmark_score(scores, index, subject_conf)
        if not math.isfinite(score):
            continue
        score = _clamp_score(score)
        # Strictly greater: a landmark exactly at the threshold is dropped.
        if score <= threshold:
            continue
        landmarks.append(
            NamedLandmark(name=name, x=x, y=y, z=z, score=score, source_index=int(index))
        )

    bbox = None
    if det.bbox is not None:
        bbox = ordered_bbox(det.bbox)
        if not all(math.isfinite(v) for v in bbox):
            bbox = None

    subject_id = ordinal if det.track_id is None else int(det.track_id)
    record = SubjectRecord(subject_id=subject_id, landmarks=tuple(landmarks), bbox=bbox)
    # Detectors without a subject score (face mesh) fall back to the landmark mean.
    confidence = _clamp_score(subject_conf) if subject_conf is not None else record.mean_confidence
    return replace(record, confidence=confidence)


def extract(
    raw_detections: Iterable[RawDetection] | None,
    selector: Mapping[str, int],
    threshold: float = CONFIDENCE_THRESHOLD,
) -> list[SubjectRecord]:
    """Map raw detections to subject records, skipping malformed subjects.

    Args:
        raw_detections: Detector output for one frame (may be empty).
        selector: Ordered semantic name -> native landmark index mapping.
        threshold: Landmarks must score strictly above this to be retained.

    Returns:
        One record per usable detection, in input order.
    """

    if not raw_detections:
        return []

    records: list[SubjectRecord] = []
    for ordinal, det in enumerate(raw_detections):
        try:
            records.append(extract_subject(det, ordinal, selector, threshold))
        except (MalformedDetection, AttributeError, IndexError, TypeError, ValueError) as exc:
            logger.debug("Skipping malformed detection #%d: %s", ordinal, exc)
    return records
