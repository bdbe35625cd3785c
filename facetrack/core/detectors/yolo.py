"""Ultralytics YOLO pose detector integration.

Produces COCO-17 keypoints per person; the face subset is picked downstream by
`COCO_FACE_SELECTOR`. Torch stays an optional runtime dependency so ONNX
exports can run without importing it.
"""

from __future__ import annotations

import importlib
import os
from contextlib import nullcontext
from typing import Any

import numpy as np
from ultralytics import YOLO

from facetrack.core.types import RawDetection

YOLO_POSE_DEFAULT_MODEL = "yolo11n-pose.pt"


def _to_numpy(value: Any) -> np.ndarray | None:
    if value is None:
        return None
    if hasattr(value, "cpu"):
        value = value.cpu()
    return value.numpy() if hasattr(value, "numpy") else np.asarray(value)


class YoloPoseDetector:
    """Multi-person pose detector wrapper around Ultralytics YOLO.

    When `track` is enabled the model's built-in tracker (`model.track` with
    `persist=True`) supplies identity tokens that stay stable across frames.
    CPU threads can be tuned via `FT_TORCH_THREADS`.
    """

    _torch_threads_configured: bool = False

    def __init__(
        self,
        model_name: str = YOLO_POSE_DEFAULT_MODEL,
        conf: float = 0.3,
        track: bool = True,
    ):
        self._configure_torch_threads_from_env()

        self.model_name = model_name
        self.is_onnx = model_name.lower().endswith(".onnx")
        self.device: str = "cpu"
        self._torch_inference_mode: Any | None = None
        if not self.is_onnx:
            try:
                torch = importlib.import_module("torch")
                self._torch_inference_mode = torch.inference_mode
            except ImportError:
                self._torch_inference_mode = None
        self.model = YOLO(model_name, task="pose")
        self.conf = conf
        self.track = track
        self._base_kwargs: dict[str, Any] = {
            "conf": self.conf,
            "verbose": False,
            # Person class only (COCO class id 0).
            "classes": [0],
            "device": self.device,
        }

    @classmethod
    def _configure_torch_threads_from_env(cls) -> None:
        if cls._torch_threads_configured:
            return
        cls._torch_threads_configured = True

        threads_s = os.getenv("FT_TORCH_THREADS")
        if threads_s is None or not threads_s.strip():
            return
        try:
            torch = importlib.import_module("torch")
            torch.set_num_threads(max(1, int(threads_s)))
        except (ImportError, AttributeError, ValueError):
            return

    def estimate(
        self,
        frame: np.ndarray,
        *,
        max_subjects: int = 6,
        flip_horizontal: bool = False,
    ) -> list[RawDetection]:
        """Run inference on a single frame and return per-person detections.

        `flip_horizontal` only reports that the frame is already mirrored.
        """

        kwargs = dict(self._base_kwargs)
        kwargs["max_det"] = int(max_subjects)

        infer_ctx = (
            self._torch_inference_mode()
            if self._torch_inference_mode is not None
            else nullcontext()
        )
        with infer_ctx:
            if self.track:
                results = self.model.track(frame, persist=True, **kwargs)
            else:
                results = self.model.predict(frame, **kwargs)

        if not results:
            return []
        return self._parse_result(results[0])

    @staticmethod
    def _parse_result(result: Any) -> list[RawDetection]:
        boxes = getattr(result, "boxes", None)
        kpts = getattr(result, "keypoints", None)
        if boxes is None or len(boxes) == 0 or kpts is None:
            return []

        xyxy = _to_numpy(getattr(boxes, "xyxy", None))
        confs = _to_numpy(getattr(boxes, "conf", None))
        ids = _to_numpy(getattr(boxes, "id", None))
        kd = _to_numpy(getattr(kpts, "data", None))
        if xyxy is None or kd is None or kd.ndim != 3:
            return []

        out: list[RawDetection] = []
        for i in range(min(len(xyxy), int(kd.shape[0]))):
            person = kd[i]
            # Ultralytics keypoints.data = (x, y, conf) per keypoint.
            scores = person[:, 2] if person.shape[1] >= 3 else None
            out.append(
                RawDetection(
                    points=person[:, :2],
                    scores=scores,
                    bbox=(
                        float(xyxy[i][0]),
                        float(xyxy[i][1]),
                        float(xyxy[i][2]),
                        float(xyxy[i][3]),
                    ),
                    confidence=float(confs[i]) if confs is not None else None,
                    track_id=int(ids[i]) if ids is not None and i < len(ids) else None,
                )
            )
        return out
