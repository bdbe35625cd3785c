"""Stats and diagnostics endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from facetrack.api.schemas.models import StatsSchema
from facetrack.api.services.engine import LandmarkEngine
from facetrack.api.services.state import get_engine

router = APIRouter()


@router.get("/stats", response_model=StatsSchema)
def stats(engine: LandmarkEngine = Depends(get_engine)) -> StatsSchema:
    """Return loop statistics, including any setup error."""

    payload = engine.latest_payload()
    phase = engine.phase().value
    if payload is None:
        return StatsSchema(subjects=0, points=0, fps=0.0, cycles=0, phase=phase, error=engine.last_error)
    return StatsSchema(
        subjects=len(payload.subjects),
        points=sum(len(r.landmarks) for r in payload.subjects),
        fps=payload.fps,
        cycles=payload.cycle,
        phase=phase,
        error=engine.last_error,
    )


@router.get("/diagnostics")
def diagnostics(engine: LandmarkEngine = Depends(get_engine)) -> list[dict[str, Any]]:
    """Return the most recent periodic diagnostic snapshot (empty until one is emitted)."""

    return engine.latest_diagnostic() or []
