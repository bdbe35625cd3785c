"""Runtime configuration.

Settings are loaded from YAML defaults and overridden by environment variables
prefixed with `FT_`.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from facetrack.core.landmarks.extractor import CONFIDENCE_THRESHOLD


class TrackerSettings(BaseSettings):
    """Runtime configuration loaded from YAML defaults and `FT_` env overrides."""

    model_config = SettingsConfigDict(
        env_prefix="FT_", validate_assignment=True, protected_namespaces=()
    )

    video_source: str = Field("webcam", description="webcam|file")
    video_path: str | None = None
    camera_index: int = 0
    frame_width: int = 640
    frame_height: int = 480

    detector: str = Field("yolo_pose", description="yolo_pose|face_mesh")
    model_name: str = "yolo11n-pose.pt"
    max_subjects: int = 6
    flip_horizontal: bool = False
    # Identity persistence across frames (native tracker or IoU wrapper).
    enable_tracking: bool = True
    confidence_threshold: float = CONFIDENCE_THRESHOLD

    # Soft target; cycles never overlap, throughput may fall below it.
    cycle_interval_ms: float = 100.0
    perf_window_ms: float = 5000.0
    # Emit a diagnostic snapshot every N cycles (0 disables).
    diagnostic_every_n: int = 30
    jpeg_quality: int = 70

    @field_validator("video_source")
    @classmethod
    def _validate_source(cls, v: str) -> str:
        if v not in {"webcam", "file"}:
            raise ValueError("video_source must be webcam|file")
        return v

    @field_validator("detector")
    @classmethod
    def _validate_detector(cls, v: str) -> str:
        v2 = str(v).strip().lower()
        if v2 not in {"yolo_pose", "face_mesh"}:
            raise ValueError("detector must be yolo_pose|face_mesh")
        return v2

    @field_validator("confidence_threshold")
    @classmethod
    def _validate_threshold(cls, v: float) -> float:
        if not 0.0 <= float(v) < 1.0:
            raise ValueError("confidence_threshold must be in [0, 1)")
        return float(v)

    @field_validator("max_subjects")
    @classmethod
    def _validate_max_subjects(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("max_subjects must be >= 1")
        return v

    @field_validator("frame_width", "frame_height")
    @classmethod
    def _validate_frame_dim(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("frame dimensions must be > 0")
        return v

    @field_validator("cycle_interval_ms")
    @classmethod
    def _validate_interval(cls, v: float) -> float:
        if v < 0:
            raise ValueError("cycle_interval_ms must be >= 0")
        return float(v)

    @field_validator("perf_window_ms")
    @classmethod
    def _validate_perf_window(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("perf_window_ms must be > 0")
        return float(v)

    @field_validator("diagnostic_every_n")
    @classmethod
    def _validate_diagnostic_every_n(cls, v: int) -> int:
        if v < 0:
            raise ValueError("diagnostic_every_n must be >= 0")
        return v

    @field_validator("jpeg_quality")
    @classmethod
    def _validate_jpeg_quality(cls, v: int) -> int:
        if not 10 <= v <= 100:
            raise ValueError("jpeg_quality must be in [10, 100]")
        return v


def settings_to_dict(settings: TrackerSettings) -> dict[str, Any]:
    return settings.model_dump()


def _config_path() -> Path:
    """Return the YAML configuration path (defaults to config/facetrack.config.yml)."""

    return Path(os.getenv("FT_CONFIG", "config/facetrack.config.yml"))


def load_settings() -> TrackerSettings:
    """Load settings from YAML and environment variables.

    YAML provides defaults; environment variables override.
    """

    data: dict[str, Any] = {}
    path = _config_path()
    if path.exists():
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

    env_settings = TrackerSettings()
    env_overrides: dict[str, Any] = {
        name: getattr(env_settings, name) for name in env_settings.model_fields_set
    }

    merged = {**data, **env_overrides}
    return TrackerSettings(**merged)
