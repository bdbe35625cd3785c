"""Structured diagnostic snapshots of the current frame's subjects.

The payload shape is consumed downstream (control-signal mapping), so keys and
formatting are kept stable.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from typing import Any

from facetrack.core.types import SubjectRecord

logger = logging.getLogger("facetrack.diagnostics")


def _percent(value: float, digits: int) -> str:
    return f"{value * 100:.{digits}f}%"


def _normalized(value: float, extent: int) -> float:
    return round(value / extent, 3) if extent > 0 else 0.0


def build_diagnostic(
    snapshot: Sequence[SubjectRecord],
    surface_size: tuple[int, int],
) -> list[dict[str, Any]]:
    """Return one dict per subject, in snapshot order."""

    width, height = surface_size
    return [
        {
            "person_id": index + 1,
            "id": record.subject_id,
            "point_count": len(record.landmarks),
            "confidence": _percent(record.confidence, 1),
            "keypoints": [
                {
                    "name": lm.name,
                    "x": round(lm.x),
                    "y": round(lm.y),
                    "normalized_x": _normalized(lm.x, width),
                    "normalized_y": _normalized(lm.y, height),
                    "confidence": _percent(lm.score, 0),
                }
                for lm in record.landmarks
            ],
        }
        for index, record in enumerate(snapshot)
    ]


def emit_diagnostic(payload: list[dict[str, Any]]) -> None:
    logger.info("Face tracking data: %s", json.dumps(payload))
