"""MediaPipe Face Mesh detector integration.

The 468-point mesh is reduced to named landmarks downstream by
`FACE_MESH_SELECTOR`. MediaPipe is an optional dependency
(`pip install facetrack[mediapipe]`), imported when the detector is built.
"""

from __future__ import annotations

import importlib

import cv2
import numpy as np

from facetrack.core.types import RawDetection


class FaceMeshDetector:
    """Multi-face landmark detector backed by `mediapipe.solutions.face_mesh`.

    MediaPipe reports normalized coordinates; they are converted to pixels. The
    mesh exposes no per-face or per-point confidence, so detections carry
    neither and the extractor's score fallback applies.
    """

    def __init__(
        self,
        max_num_faces: int = 4,
        min_detection_confidence: float = 0.5,
        min_tracking_confidence: float = 0.5,
    ) -> None:
        try:
            mp = importlib.import_module("mediapipe")
        except ImportError as exc:
            raise RuntimeError(
                "MediaPipe is not installed. Install it with: pip install 'facetrack[mediapipe]'"
            ) from exc

        self.max_num_faces = int(max_num_faces)
        self._mesh = mp.solutions.face_mesh.FaceMesh(
            static_image_mode=False,
            max_num_faces=self.max_num_faces,
            refine_landmarks=False,
            min_detection_confidence=float(min_detection_confidence),
            min_tracking_confidence=float(min_tracking_confidence),
        )

    def estimate(
        self,
        frame: np.ndarray,
        *,
        max_subjects: int = 4,
        flip_horizontal: bool = False,
    ) -> list[RawDetection]:
        """Run the mesh on a BGR frame and return one detection per face."""

        h, w = frame.shape[:2]
        rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        res = self._mesh.process(rgb)
        faces = getattr(res, "multi_face_landmarks", None) or []

        out: list[RawDetection] = []
        for face in faces[: max(0, int(max_subjects))]:
            pts = np.array(
                [(p.x * w, p.y * h, p.z * w) for p in face.landmark],
                dtype=float,
            )
            if pts.size == 0:
                continue
            x1, y1 = pts[:, 0].min(), pts[:, 1].min()
            x2, y2 = pts[:, 0].max(), pts[:, 1].max()
            out.append(RawDetection(points=pts, bbox=(float(x1), float(y1), float(x2), float(y2))))
        return out

    def close(self) -> None:
        self._mesh.close()
