"""Presentation surface backed by a BGRA numpy canvas (OpenCV primitives).

The overlay is drawn on its own transparent layer and blended onto the video
frame on demand, so the video itself is never mutated by the renderer.
"""

from __future__ import annotations

import cv2
import numpy as np

Color = tuple[int, int, int]

FONT = cv2.FONT_HERSHEY_SIMPLEX


def _bgra(color: Color, alpha: float = 1.0) -> tuple[int, int, int, int]:
    b, g, r = color
    return (int(b), int(g), int(r), int(round(255 * min(1.0, max(0.0, alpha)))))


def _pt(x: float, y: float) -> tuple[int, int]:
    return (int(round(x)), int(round(y)))


class OverlaySurface:
    """A drawable overlay layer with mutable pixel dimensions."""

    def __init__(self, width: int, height: int) -> None:
        self.canvas = np.zeros((max(0, int(height)), max(0, int(width)), 4), dtype=np.uint8)

    @property
    def width(self) -> int:
        return int(self.canvas.shape[1])

    @property
    def height(self) -> int:
        return int(self.canvas.shape[0])

    @property
    def size(self) -> tuple[int, int]:
        return (self.width, self.height)

    def resize(self, width: int, height: int) -> bool:
        """Match the live frame dimensions. Returns True when the size changed."""

        width, height = int(width), int(height)
        if width <= 0 or height <= 0 or (width, height) == self.size:
            return False
        self.canvas = np.zeros((height, width, 4), dtype=np.uint8)
        return True

    def clear(self) -> None:
        self.canvas[:] = 0

    def stroke_rect(self, x1: float, y1: float, x2: float, y2: float, color: Color, thickness: int = 2) -> None:
        cv2.rectangle(self.canvas, _pt(x1, y1), _pt(x2, y2), _bgra(color), thickness, cv2.LINE_AA)

    def fill_rect(self, x1: float, y1: float, x2: float, y2: float, color: Color, alpha: float = 1.0) -> None:
        cv2.rectangle(self.canvas, _pt(x1, y1), _pt(x2, y2), _bgra(color, alpha), -1)

    def line(self, x1: float, y1: float, x2: float, y2: float, color: Color, thickness: int = 2) -> None:
        cv2.line(self.canvas, _pt(x1, y1), _pt(x2, y2), _bgra(color), thickness, cv2.LINE_AA)

    def circle(
        self,
        x: float,
        y: float,
        radius: int,
        fill: Color,
        outline: Color | None = None,
        outline_thickness: int = 2,
    ) -> None:
        cv2.circle(self.canvas, _pt(x, y), int(radius), _bgra(fill), -1, cv2.LINE_AA)
        if outline is not None:
            cv2.circle(self.canvas, _pt(x, y), int(radius), _bgra(outline), outline_thickness, cv2.LINE_AA)

    def text(
        self,
        text: str,
        x: float,
        y: float,
        color: Color,
        scale: float = 0.4,
        thickness: int = 1,
        outline: Color | None = None,
    ) -> None:
        """Draw `text` with its baseline at (x, y); optional dark outline for contrast."""

        org = _pt(x, y)
        if outline is not None:
            cv2.putText(self.canvas, text, org, FONT, scale, _bgra(outline), thickness + 2, cv2.LINE_AA)
        cv2.putText(self.canvas, text, org, FONT, scale, _bgra(color), thickness, cv2.LINE_AA)

    def composite(self, frame: np.ndarray) -> np.ndarray:
        """Return a copy of the BGR `frame` with the overlay alpha-blended on top."""

        h, w = frame.shape[:2]
        overlay = self.canvas
        if (w, h) != self.size:
            overlay = cv2.resize(overlay, (w, h), interpolation=cv2.INTER_NEAREST)
        alpha = overlay[:, :, 3:4].astype(np.float32) / 255.0
        if not alpha.any():
            return frame.copy()
        blended = frame.astype(np.float32) * (1.0 - alpha) + overlay[:, :, :3].astype(np.float32) * alpha
        return blended.astype(np.uint8)
