"""Pydantic models for the HTTP/WS API."""

from __future__ import annotations

from pydantic import BaseModel

from facetrack.core.types import SnapshotPayload, SubjectRecord


class LandmarkSchema(BaseModel):
    """One retained landmark."""

    name: str
    x: float
    y: float
    z: float | None = None
    score: float
    source_index: int


class SubjectSchema(BaseModel):
    """Per-subject record payload."""

    subject_id: int
    landmarks: list[LandmarkSchema]
    bbox: tuple[float, float, float, float] | None = None
    confidence: float

    @classmethod
    def from_record(cls, record: SubjectRecord) -> SubjectSchema:
        return cls(
            subject_id=record.subject_id,
            landmarks=[
                LandmarkSchema(
                    name=lm.name,
                    x=lm.x,
                    y=lm.y,
                    z=lm.z,
                    score=lm.score,
                    source_index=lm.source_index,
                )
                for lm in record.landmarks
            ],
            bbox=record.bbox,
            confidence=record.confidence,
        )


class SnapshotSchema(BaseModel):
    """Per-cycle snapshot payload."""

    cycle: int
    timestamp: float
    subjects: list[SubjectSchema]
    fps: float
    frame_size: tuple[int, int]

    @classmethod
    def from_payload(cls, payload: SnapshotPayload) -> SnapshotSchema:
        return cls(
            cycle=payload.cycle,
            timestamp=payload.timestamp,
            subjects=[SubjectSchema.from_record(r) for r in payload.subjects],
            fps=payload.fps,
            frame_size=payload.frame_size,
        )


class StatsSchema(BaseModel):
    """High-level loop statistics."""

    subjects: int
    points: int
    fps: float
    cycles: int
    phase: str
    error: str | None = None
