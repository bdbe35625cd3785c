"""Semantic landmark name -> detector-native index tables.

The extractor is polymorphic over detector variants: each backend only needs a
selector mapping the shared `LANDMARK_NAMES` onto its own index scheme.
"""

from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType

# COCO-17 pose keypoints (Ultralytics / MoveNet ordering).
COCO_FACE_SELECTOR: Mapping[str, int] = MappingProxyType(
    {
        "nose": 0,
        "left_eye": 1,
        "right_eye": 2,
        "left_ear": 3,
        "right_ear": 4,
    }
)

# 468-point face mesh: nose tip, outer eye corners, cheek contour near the ears.
FACE_MESH_SELECTOR: Mapping[str, int] = MappingProxyType(
    {
        "nose": 1,
        "left_eye": 33,
        "right_eye": 263,
        "left_ear": 234,
        "right_ear": 454,
    }
)

SELECTORS: Mapping[str, Mapping[str, int]] = MappingProxyType(
    {
        "yolo_pose": COCO_FACE_SELECTOR,
        "face_mesh": FACE_MESH_SELECTOR,
    }
)


def selector_for(detector_kind: str) -> Mapping[str, int]:
    """Return the landmark selector for a configured detector kind."""

    try:
        return SELECTORS[detector_kind]
    except KeyError:
        raise ValueError(f"Unknown detector kind: {detector_kind}") from None
