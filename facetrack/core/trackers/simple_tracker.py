from __future__ import annotations

import asyncio
import inspect
import itertools
from dataclasses import dataclass, replace
from typing import Any

import numpy as np

from facetrack.core.types import BBox, RawDetection

IOU_SUPPRESS_VALUE = -1.0


def iou_matrix(boxes_a: np.ndarray, boxes_b: np.ndarray) -> np.ndarray:
    """Pairwise IoU between two (N, 4) / (M, 4) xyxy box arrays."""

    xA = np.maximum(boxes_a[:, None, 0], boxes_b[None, :, 0])
    yA = np.maximum(boxes_a[:, None, 1], boxes_b[None, :, 1])
    xB = np.minimum(boxes_a[:, None, 2], boxes_b[None, :, 2])
    yB = np.minimum(boxes_a[:, None, 3], boxes_b[None, :, 3])
    inter = np.maximum(0.0, xB - xA) * np.maximum(0.0, yB - yA)
    area_a = np.maximum(0.0, boxes_a[:, 2] - boxes_a[:, 0]) * np.maximum(0.0, boxes_a[:, 3] - boxes_a[:, 1])
    area_b = np.maximum(0.0, boxes_b[:, 2] - boxes_b[:, 0]) * np.maximum(0.0, boxes_b[:, 3] - boxes_b[:, 1])
    union = area_a[:, None] + area_b[None, :] - inter
    with np.errstate(divide="ignore", invalid="ignore"):
        return np.where(union > 0.0, inter / union, 0.0)


@dataclass
class Track:
    """Internal tracker state for one subject."""

    id: int
    bbox: BBox
    missed: int = 0


class SimpleTracker:
    """A lightweight IoU-based identity tracker.

    Detections are matched to existing tracks greedily by IoU; matched detections
    inherit the track's id, unmatched ones open a new track. Tracks survive
    `max_missed` frames without a match. Detections without a bbox are passed
    through untouched.
    """

    def __init__(self, iou_threshold: float = 0.3, max_missed: int = 30) -> None:
        self.iou_threshold = iou_threshold
        self.max_missed = max_missed
        self.tracks: dict[int, Track] = {}
        self._id_iter = itertools.count(1)

    def _open(self, det: RawDetection) -> RawDetection:
        new_id = next(self._id_iter)
        self.tracks[new_id] = Track(id=new_id, bbox=det.bbox)
        return replace(det, track_id=new_id)

    def update(self, detections: list[RawDetection]) -> list[RawDetection]:
        """Return `detections` (same order) with `track_id` filled in."""

        out: list[RawDetection] = list(detections)
        boxed = [i for i, det in enumerate(out) if det.bbox is not None]

        track_ids = list(self.tracks.keys())
        matched_tracks: set[int] = set()
        matched_dets: set[int] = set()

        if track_ids and boxed:
            track_boxes = np.array([self.tracks[tid].bbox for tid in track_ids], dtype=np.float64)
            det_boxes = np.array([out[i].bbox for i in boxed], dtype=np.float64)
            ious = iou_matrix(track_boxes, det_boxes)
            while ious.size:
                ti, bi = divmod(int(ious.argmax()), ious.shape[1])
                if ious[ti, bi] < self.iou_threshold:
                    break
                tid = track_ids[ti]
                di = boxed[bi]
                track = self.tracks[tid]
                track.bbox = out[di].bbox
                track.missed = 0
                out[di] = replace(out[di], track_id=tid)
                matched_tracks.add(tid)
                matched_dets.add(di)
                ious[ti, :] = IOU_SUPPRESS_VALUE
                ious[:, bi] = IOU_SUPPRESS_VALUE

        for di in boxed:
            if di not in matched_dets:
                out[di] = self._open(out[di])

        for tid in track_ids:
            if tid in matched_tracks:
                continue
            track = self.tracks[tid]
            track.missed += 1
            if track.missed > self.max_missed:
                del self.tracks[tid]
        return out


class TrackingDetector:
    """Detector wrapper adding identity tokens to a backend without tracking."""

    def __init__(self, detector: Any, tracker: SimpleTracker | None = None) -> None:
        self.detector = detector
        self.tracker = tracker or SimpleTracker()

    async def estimate(
        self,
        frame: np.ndarray,
        *,
        max_subjects: int,
        flip_horizontal: bool,
    ) -> list[RawDetection]:
        if inspect.iscoroutinefunction(self.detector.estimate):
            detections = await self.detector.estimate(
                frame, max_subjects=max_subjects, flip_horizontal=flip_horizontal
            )
        else:
            detections = await asyncio.to_thread(
                self.detector.estimate,
                frame,
                max_subjects=max_subjects,
                flip_horizontal=flip_horizontal,
            )
        return self.tracker.update(list(detections or []))

    def close(self) -> None:
        closer = getattr(self.detector, "close", None)
        if callable(closer):
            closer()
