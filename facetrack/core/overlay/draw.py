"""Overlay renderer: boxes, landmarks, connections, labels and a summary panel."""

from __future__ import annotations

from collections.abc import Sequence

from facetrack.core.overlay.surface import Color, OverlaySurface
from facetrack.core.types import SubjectRecord

# BGR. Red, blue, green, gold, magenta, cyan, orange, pink.
PALETTE: tuple[Color, ...] = (
    (0, 0, 255),
    (255, 102, 0),
    (0, 255, 0),
    (0, 215, 255),
    (255, 0, 255),
    (255, 255, 0),
    (0, 165, 255),
    (180, 105, 255),
)
WHITE: Color = (255, 255, 255)
BLACK: Color = (0, 0, 0)

FACE_CONNECTIONS: tuple[tuple[str, str], ...] = (
    ("left_eye", "nose"),
    ("right_eye", "nose"),
    ("left_eye", "left_ear"),
    ("right_eye", "right_ear"),
)

LANDMARK_RADIUS = 6
DEFAULT_LABEL_ANCHOR = (50.0, 50.0)

PANEL_X = 10
PANEL_Y = 10
PANEL_WIDTH = 280
PANEL_MAX_HEIGHT = 180
PANEL_BASE_HEIGHT = 80
PANEL_ROW_HEIGHT = 30
PANEL_TITLE = "FACE TRACKING"


def palette_color(subject_index: int) -> Color:
    return PALETTE[subject_index % len(PALETTE)]


def visible_connections(record: SubjectRecord) -> list[tuple[str, str]]:
    """Connections whose two endpoints both survived confidence filtering."""

    present = {lm.name for lm in record.landmarks}
    return [(a, b) for a, b in FACE_CONNECTIONS if a in present and b in present]


def subject_label(subject_index: int, record: SubjectRecord) -> str:
    return f"Person {subject_index + 1} ({record.confidence * 100:.0f}%)"


def label_anchor(record: SubjectRecord) -> tuple[float, float]:
    """Above the bbox, else above the first landmark, else a fixed default."""

    if record.bbox is not None:
        return (record.bbox[0], record.bbox[1] - 10)
    if record.landmarks:
        first = record.landmarks[0]
        return (first.x - 40, first.y - 30)
    return DEFAULT_LABEL_ANCHOR


def panel_height(n_subjects: int, surface_height: int) -> int:
    height = min(PANEL_MAX_HEIGHT, PANEL_BASE_HEIGHT + n_subjects * PANEL_ROW_HEIGHT)
    return max(0, min(height, surface_height - PANEL_Y))


def summary_lines(records: Sequence[SubjectRecord], fps: float | None = None) -> list[str]:
    """Header lines followed by one line per subject (untruncated)."""

    total_points = sum(len(r.landmarks) for r in records)
    lines = [
        PANEL_TITLE,
        f"People: {len(records)}  Points: {total_points}",
        f"FPS: {fps:.1f}" if fps else "FPS: --",
    ]
    for i, record in enumerate(records):
        lines.append(f"P{i + 1}: {len(record.landmarks)}pts ({record.mean_confidence * 100:.0f}%)")
    return lines


class OverlayRenderer:
    """Draws a frame snapshot onto an `OverlaySurface`.

    A renderer without a surface is "not ready" and silently ignores render calls.
    """

    def __init__(self, surface: OverlaySurface | None = None) -> None:
        self.surface = surface

    def render(self, records: Sequence[SubjectRecord], fps: float | None = None) -> list[str]:
        """Redraw the whole overlay; returns the summary lines actually drawn."""

        surface = self.surface
        if surface is None:
            return []

        surface.clear()
        for index, record in enumerate(records):
            self._draw_subject(surface, index, record)
        return self._draw_summary(surface, records, fps)

    def _draw_subject(self, surface: OverlaySurface, index: int, record: SubjectRecord) -> None:
        color = palette_color(index)
        if record.bbox is not None:
            x1, y1, x2, y2 = record.bbox
            surface.stroke_rect(x1, y1, x2, y2, color, 2)

        for a, b in visible_connections(record):
            pa, pb = record.landmark(a), record.landmark(b)
            surface.line(pa.x, pa.y, pb.x, pb.y, color, 2)

        for lm in record.landmarks:
            surface.circle(lm.x, lm.y, LANDMARK_RADIUS, color, outline=WHITE)
            surface.text(lm.name, lm.x + 8, lm.y - 8, WHITE, 0.35, outline=BLACK)
            surface.text(f"{lm.score * 100:.0f}%", lm.x + 8, lm.y + 6, WHITE, 0.35, outline=BLACK)

        lx, ly = label_anchor(record)
        surface.text(subject_label(index, record), lx, ly, color, 0.5, 1, outline=BLACK)

    def _draw_summary(
        self,
        surface: OverlaySurface,
        records: Sequence[SubjectRecord],
        fps: float | None,
    ) -> list[str]:
        height = panel_height(len(records), surface.height)
        if height <= 0:
            return []
        x2 = min(PANEL_X + PANEL_WIDTH, surface.width - 1)
        y2 = PANEL_Y + height
        surface.fill_rect(PANEL_X, PANEL_Y, x2, y2, BLACK, alpha=0.8)
        surface.stroke_rect(PANEL_X, PANEL_Y, x2, y2, WHITE, 1)

        drawn: list[str] = []
        text_y = PANEL_Y + 20
        for i, line in enumerate(summary_lines(records, fps)):
            # Truncate subject rows at the panel's bottom margin, never resize.
            if text_y > y2 - 15:
                break
            scale = 0.5 if i == 0 else 0.4
            surface.text(line, PANEL_X + 5, text_y, WHITE, scale)
            drawn.append(line)
            text_y += 20 if i < 3 else 15
        return drawn
